"""
Cloud Artifacts

Architectural Intent:
- In-memory model of the artifacts produced by the synthesis step
- Artifacts reference their dependencies as objects, not ids, so the
  graph builder can tell stacks apart from asset manifests by type
- Artifacts compare by identity; two artifacts with the same id in
  different nested assemblies are distinct
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from stackgraph.domain.value_objects.asset_manifest import AssetManifest

STACK_ARTIFACT_TYPE = "aws:cloudformation:stack"
ASSET_MANIFEST_ARTIFACT_TYPE = "cdk:asset-manifest"
NESTED_ASSEMBLY_ARTIFACT_TYPE = "cdk:cloud-assembly"


@dataclass(eq=False)
class CloudArtifact:
    id: str
    manifest: dict[str, Any] = field(default_factory=dict)
    dependencies: list["CloudArtifact"] = field(default_factory=list)
    display_name: Optional[str] = None

    @property
    def hierarchical_id(self) -> str:
        return self.display_name or self.id

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


@dataclass(eq=False, repr=False)
class StackArtifact(CloudArtifact):
    template_file: str = ""
    stack_name: str = ""
    environment: str = "aws://unknown-account/unknown-region"
    parameters: dict[str, str] = field(default_factory=dict)
    termination_protection: bool = False
    assembly_directory: str = ""

    def __post_init__(self) -> None:
        if not self.stack_name:
            self.stack_name = self.id

    @property
    def template_full_path(self) -> str:
        return str(Path(self.assembly_directory) / self.template_file)


@dataclass(eq=False, repr=False)
class AssetManifestArtifact(CloudArtifact):
    file: str = ""
    requires_bootstrap_stack_version: Optional[int] = None
    asset_manifest: Optional[AssetManifest] = None

    def load_manifest(self) -> AssetManifest:
        if self.asset_manifest is None:
            self.asset_manifest = AssetManifest.from_file(self.file)
        return self.asset_manifest


@dataclass(eq=False, repr=False)
class NestedAssemblyArtifact(CloudArtifact):
    directory_name: str = ""
    full_path: str = ""
    artifacts: list[CloudArtifact] = field(default_factory=list)


def only_stacks(artifacts: list[CloudArtifact]) -> list[StackArtifact]:
    return [a for a in artifacts if isinstance(a, StackArtifact)]
