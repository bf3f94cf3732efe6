"""
Asset Manifest Value Objects

Architectural Intent:
- Immutable view of an asset manifest written by the synthesis step
- One entry per (asset, destination) pair, so an asset published to two
  regions yields two entries sharing the same source
- File and container image assets share one entry type, distinguished
  by ``type``
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import json

from stackgraph.domain.errors import AssemblyError

FILE_ASSET = "file"
DOCKER_IMAGE_ASSET = "docker-image"

_SECTIONS = {
    "files": FILE_ASSET,
    "dockerImages": DOCKER_IMAGE_ASSET,
}


@dataclass(frozen=True)
class DestinationIdentifier:
    asset_id: str
    destination_id: str = ""

    def __str__(self) -> str:
        if self.destination_id:
            return f"{self.asset_id}:{self.destination_id}"
        return self.asset_id


@dataclass(frozen=True)
class AssetManifestEntry:
    """A single asset bound to a single publishing destination."""
    id: DestinationIdentifier
    type: str
    source: dict[str, Any] = field(default_factory=dict, hash=False)
    destination: dict[str, Any] = field(default_factory=dict, hash=False)
    raw_display_name: Optional[str] = None

    @property
    def generic_source(self) -> dict[str, Any]:
        return self.source

    @property
    def generic_destination(self) -> dict[str, Any]:
        return self.destination

    def display_name(self, include_destination: bool) -> str:
        if include_destination:
            if self.raw_display_name:
                return f"{self.raw_display_name} ({self.id.destination_id})"
            return str(self.id)
        return self.raw_display_name or self.id.asset_id


class AssetManifest:
    """Parsed asset manifest.

    The on-disk format is a JSON document with ``files`` and
    ``dockerImages`` sections, each mapping an asset id to its ``source``
    and its ``destinations``.
    """

    def __init__(self, directory: str, data: dict[str, Any]) -> None:
        self.directory = directory
        self.version: str = str(data.get("version", ""))
        self._entries = tuple(_parse_entries(data))

    @classmethod
    def from_file(cls, file_name: str) -> "AssetManifest":
        path = Path(file_name)
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AssemblyError.with_cause(
                f"Cannot read asset manifest '{file_name}': {e}", e
            )
        if not isinstance(data, dict):
            raise AssemblyError(f"Asset manifest '{file_name}' is not a JSON object")
        return cls(str(path.parent), data)

    @property
    def entries(self) -> tuple[AssetManifestEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AssetManifest(directory={self.directory!r}, entries={len(self._entries)})"


def _parse_entries(data: dict[str, Any]):
    for section, asset_type in _SECTIONS.items():
        for asset_id, asset in (data.get(section) or {}).items():
            source = asset.get("source", {})
            display_name = asset.get("displayName")
            for dest_id, destination in (asset.get("destinations") or {}).items():
                yield AssetManifestEntry(
                    id=DestinationIdentifier(asset_id, dest_id),
                    type=asset_type,
                    source=source,
                    destination=destination,
                    raw_display_name=display_name,
                )
