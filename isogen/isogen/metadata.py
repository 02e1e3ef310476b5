"""JSON file of generated ISO records.

The file holds a JSON array. Every save rewrites the whole file; records
are unique per (build id, ISO name). A missing or unreadable file reads as
an empty list.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from .models import IsoMetadata

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger(__name__)


class IsoMetadataStore:
    """Reads and writes the ISO metadata file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._log = logger.bind(component="iso_metadata", path=str(path))

    def load(self) -> list[IsoMetadata]:
        """Load all records, treating absence or corruption as empty."""
        if not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            self._log.warning("metadata_unreadable", error=str(e))
            return []

        if not isinstance(data, list):
            self._log.warning("metadata_not_a_list", type=type(data).__name__)
            return []

        records = []
        for item in data:
            try:
                records.append(IsoMetadata.model_validate(item))
            except ValidationError as e:
                self._log.warning("metadata_record_invalid", error=str(e))
        return records

    def save(self, record: IsoMetadata) -> None:
        """Add or replace a record and rewrite the file.

        Raises:
            OSError: If the file cannot be written.
        """
        key = (record.build_id, record.iso_name)
        records = [r for r in self.load() if (r.build_id, r.iso_name) != key]
        records.append(record)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in records]
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        temp_path.write_text(json.dumps(payload, indent=2))
        temp_path.replace(self.path)
        self._log.info("metadata_saved", build_id=record.build_id, iso_name=record.iso_name)

    def get_all(self) -> list[IsoMetadata]:
        return self.load()

    def get_by_build_id(self, build_id: str) -> list[IsoMetadata]:
        return [r for r in self.load() if r.build_id == build_id]
