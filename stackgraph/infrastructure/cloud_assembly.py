"""
Cloud Assembly Reader

Architectural Intent:
- Reads a synthesized assembly directory (``manifest.json``) into the
  artifact objects the graph builder consumes
- Dependency ids are resolved to artifact objects within one assembly
- Nested assemblies are read eagerly and recursively

Manifest format:
    {
      "version": "...",
      "artifacts": {
        "<id>": {
          "type": "aws:cloudformation:stack" | "cdk:asset-manifest"
                  | "cdk:cloud-assembly" | ...,
          "environment": "aws://<account>/<region>",
          "dependencies": ["<id>", ...],
          "properties": {...},
          "displayName": "..."
        }
      }
    }
"""

from __future__ import annotations
from pathlib import Path
from typing import Any
import json
import logging

from stackgraph.domain.entities.artifacts import (
    ASSET_MANIFEST_ARTIFACT_TYPE,
    NESTED_ASSEMBLY_ARTIFACT_TYPE,
    STACK_ARTIFACT_TYPE,
    AssetManifestArtifact,
    CloudArtifact,
    NestedAssemblyArtifact,
    StackArtifact,
)
from stackgraph.domain.errors import AssemblyError

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"


class CloudAssemblyReader:
    def __init__(self, manifest_file: str = MANIFEST_FILE) -> None:
        self.manifest_file = manifest_file

    def read(self, directory: str) -> list[CloudArtifact]:
        root = Path(directory)
        manifest = self._load_manifest(root / self.manifest_file)

        raw_artifacts = manifest.get("artifacts") or {}
        artifacts: dict[str, CloudArtifact] = {}
        for artifact_id, raw in raw_artifacts.items():
            artifacts[artifact_id] = self._create_artifact(root, artifact_id, raw)

        for artifact_id, raw in raw_artifacts.items():
            deps = []
            for dep_id in raw.get("dependencies") or []:
                dep = artifacts.get(dep_id)
                if dep is None:
                    raise AssemblyError(
                        f"Artifact {artifact_id} depends on non-existing artifact {dep_id}"
                    )
                deps.append(dep)
            artifacts[artifact_id].dependencies = deps

        logger.debug("Read %d artifacts from %s", len(artifacts), root)
        return list(artifacts.values())

    def _load_manifest(self, path: Path) -> dict[str, Any]:
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise AssemblyError.with_cause(f"No cloud assembly manifest at {path}", e)
        except json.JSONDecodeError as e:
            raise AssemblyError.with_cause(f"Invalid cloud assembly manifest {path}: {e}", e)
        if not isinstance(data, dict):
            raise AssemblyError(f"Cloud assembly manifest {path} is not a JSON object")
        return data

    def _create_artifact(
        self, root: Path, artifact_id: str, raw: dict[str, Any]
    ) -> CloudArtifact:
        artifact_type = raw.get("type", "")
        properties = raw.get("properties") or {}
        common = {
            "id": artifact_id,
            "manifest": raw,
            "display_name": raw.get("displayName"),
        }

        if artifact_type == STACK_ARTIFACT_TYPE:
            if "templateFile" not in properties:
                raise AssemblyError(f"Stack artifact {artifact_id} has no templateFile")
            return StackArtifact(
                **common,
                template_file=properties["templateFile"],
                stack_name=properties.get("stackName", ""),
                environment=raw.get("environment", "aws://unknown-account/unknown-region"),
                parameters=dict(properties.get("parameters") or {}),
                termination_protection=bool(properties.get("terminationProtection", False)),
                assembly_directory=str(root),
            )

        if artifact_type == ASSET_MANIFEST_ARTIFACT_TYPE:
            if "file" not in properties:
                raise AssemblyError(f"Asset manifest artifact {artifact_id} has no file")
            return AssetManifestArtifact(
                **common,
                file=str(root / properties["file"]),
                requires_bootstrap_stack_version=properties.get(
                    "requiresBootstrapStackVersion"
                ),
            )

        if artifact_type == NESTED_ASSEMBLY_ARTIFACT_TYPE:
            directory_name = properties.get("directoryName")
            if not directory_name:
                raise AssemblyError(f"Nested assembly {artifact_id} has no directoryName")
            full_path = root / directory_name
            return NestedAssemblyArtifact(
                **common,
                directory_name=directory_name,
                full_path=str(full_path),
                artifacts=self.read(str(full_path)),
            )

        return CloudArtifact(**common)
