"""Tests for reading a synthesized cloud assembly from disk."""

import json
import pytest
from stackgraph.domain.entities.artifacts import (
    AssetManifestArtifact,
    CloudArtifact,
    NestedAssemblyArtifact,
    StackArtifact,
)
from stackgraph.domain.errors import AssemblyError
from stackgraph.infrastructure.cloud_assembly import CloudAssemblyReader


def write_manifest(directory, artifacts):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "manifest.json").write_text(
        json.dumps({"version": "36.0.0", "artifacts": artifacts})
    )


STACK = {
    "type": "aws:cloudformation:stack",
    "environment": "aws://123456789012/us-east-1",
    "properties": {"templateFile": "App.template.json"},
}


class TestCloudAssemblyReader:
    def test_reads_stacks_and_manifests(self, tmp_path):
        write_manifest(tmp_path, {
            "App.assets": {
                "type": "cdk:asset-manifest",
                "properties": {"file": "App.assets.json", "requiresBootstrapStackVersion": 6},
            },
            "App": {
                **STACK,
                "displayName": "Stage/App",
                "dependencies": ["App.assets"],
                "properties": {
                    "templateFile": "App.template.json",
                    "stackName": "my-app",
                    "parameters": {"Env": "prod"},
                    "terminationProtection": True,
                },
            },
            "Tree": {"type": "cdk:tree", "properties": {"file": "tree.json"}},
        })

        artifacts = {a.id: a for a in CloudAssemblyReader().read(str(tmp_path))}

        manifest = artifacts["App.assets"]
        assert isinstance(manifest, AssetManifestArtifact)
        assert manifest.file == str(tmp_path / "App.assets.json")
        assert manifest.requires_bootstrap_stack_version == 6

        app = artifacts["App"]
        assert isinstance(app, StackArtifact)
        assert app.stack_name == "my-app"
        assert app.hierarchical_id == "Stage/App"
        assert app.environment == "aws://123456789012/us-east-1"
        assert app.parameters == {"Env": "prod"}
        assert app.termination_protection is True
        assert app.template_full_path == str(tmp_path / "App.template.json")
        assert app.dependencies == [manifest]

        assert type(artifacts["Tree"]) is CloudArtifact

    def test_stack_name_defaults_to_id(self, tmp_path):
        write_manifest(tmp_path, {"App": STACK})
        (app,) = CloudAssemblyReader().read(str(tmp_path))
        assert app.stack_name == "App"

    def test_dependencies_resolved_regardless_of_order(self, tmp_path):
        write_manifest(tmp_path, {
            "B": {**STACK, "dependencies": ["A"]},
            "A": STACK,
        })

        artifacts = {a.id: a for a in CloudAssemblyReader().read(str(tmp_path))}

        assert artifacts["B"].dependencies == [artifacts["A"]]

    def test_nested_assembly(self, tmp_path):
        write_manifest(tmp_path, {
            "Stage": {
                "type": "cdk:cloud-assembly",
                "properties": {"directoryName": "assembly-Stage"},
            },
        })
        write_manifest(tmp_path / "assembly-Stage", {"Inner": STACK})

        (stage,) = CloudAssemblyReader().read(str(tmp_path))

        assert isinstance(stage, NestedAssemblyArtifact)
        assert stage.full_path == str(tmp_path / "assembly-Stage")
        assert [a.id for a in stage.artifacts] == ["Inner"]
        assert stage.artifacts[0].assembly_directory == str(tmp_path / "assembly-Stage")

    def test_empty_assembly(self, tmp_path):
        write_manifest(tmp_path, {})
        assert CloudAssemblyReader().read(str(tmp_path)) == []

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(AssemblyError, match="No cloud assembly manifest"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_invalid_manifest(self, tmp_path):
        (tmp_path / "manifest.json").write_text("{not json")
        with pytest.raises(AssemblyError, match="Invalid cloud assembly manifest"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_non_object_manifest(self, tmp_path):
        (tmp_path / "manifest.json").write_text("[]")
        with pytest.raises(AssemblyError, match="not a JSON object"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_unknown_dependency(self, tmp_path):
        write_manifest(tmp_path, {"A": {**STACK, "dependencies": ["Ghost"]}})
        with pytest.raises(AssemblyError, match="depends on non-existing artifact Ghost"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_stack_without_template(self, tmp_path):
        write_manifest(tmp_path, {"A": {"type": "aws:cloudformation:stack", "properties": {}}})
        with pytest.raises(AssemblyError, match="has no templateFile"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_asset_manifest_without_file(self, tmp_path):
        write_manifest(tmp_path, {"A.assets": {"type": "cdk:asset-manifest"}})
        with pytest.raises(AssemblyError, match="has no file"):
            CloudAssemblyReader().read(str(tmp_path))

    def test_nested_assembly_without_directory(self, tmp_path):
        write_manifest(tmp_path, {"Stage": {"type": "cdk:cloud-assembly"}})
        with pytest.raises(AssemblyError, match="has no directoryName"):
            CloudAssemblyReader().read(str(tmp_path))
