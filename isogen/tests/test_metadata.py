"""Tests for the ISO metadata file."""

from __future__ import annotations

import json
from pathlib import Path

from isogen.metadata import IsoMetadataStore
from isogen.models import IsoMetadata


def make_record(
    build_id: str = "build-1", iso_name: str = "lfs.iso", **kwargs: object
) -> IsoMetadata:
    values: dict[str, object] = {
        "build_id": build_id,
        "iso_name": iso_name,
        "output_path": f"/tmp/iso/{iso_name}",
        "config_name": "Default",
    }
    values.update(kwargs)
    return IsoMetadata.model_validate(values)


class TestIsoMetadataStore:
    """Tests for IsoMetadataStore."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        """Test reading a file that does not exist."""
        assert IsoMetadataStore(tmp_path / "missing.json").get_all() == []

    def test_corrupt_file_is_empty(self, tmp_path: Path) -> None:
        """Test that unparseable content reads as empty."""
        path = tmp_path / "meta.json"
        path.write_text("{not json")

        assert IsoMetadataStore(path).get_all() == []

    def test_non_list_is_empty(self, tmp_path: Path) -> None:
        """Test that a JSON object instead of an array reads as empty."""
        path = tmp_path / "meta.json"
        path.write_text('{"buildId": "build-1"}')

        assert IsoMetadataStore(path).get_all() == []

    def test_invalid_records_are_skipped(self, tmp_path: Path) -> None:
        """Test that malformed entries are dropped and the rest kept."""
        path = tmp_path / "meta.json"
        path.write_text(
            json.dumps(
                [
                    {"buildId": "build-1", "isoName": "a.iso", "outputPath": "/tmp/a.iso"},
                    {"isoName": "orphan.iso"},
                    "garbage",
                ]
            )
        )

        records = IsoMetadataStore(path).get_all()

        assert [r.iso_name for r in records] == ["a.iso"]

    def test_save_writes_camel_case(self, tmp_path: Path) -> None:
        """Test the on-disk format."""
        path = tmp_path / "nested" / "meta.json"
        IsoMetadataStore(path).save(make_record(job_id="local-1", docker_generated=True))

        data = json.loads(path.read_text())
        assert len(data) == 1
        assert data[0]["buildId"] == "build-1"
        assert data[0]["isoName"] == "lfs.iso"
        assert data[0]["dockerGenerated"] is True
        assert data[0]["jobId"] == "local-1"
        assert "label" not in data[0]

    def test_save_replaces_same_build_and_name(self, tmp_path: Path) -> None:
        """Test that records are unique per build and ISO name."""
        store = IsoMetadataStore(tmp_path / "meta.json")
        store.save(make_record(label="first"))
        store.save(make_record(iso_name="other.iso"))
        store.save(make_record(label="second"))

        records = store.get_all()

        assert len(records) == 2
        assert {r.iso_name: r.label for r in records} == {"other.iso": None, "lfs.iso": "second"}

    def test_get_by_build_id(self, tmp_path: Path) -> None:
        """Test filtering records by build."""
        store = IsoMetadataStore(tmp_path / "meta.json")
        store.save(make_record("build-1"))
        store.save(make_record("build-2"))

        assert [r.build_id for r in store.get_by_build_id("build-2")] == ["build-2"]
        assert store.get_by_build_id("build-3") == []

    def test_round_trip_keeps_timestamp(self, tmp_path: Path) -> None:
        """Test that the timestamp survives a save and load."""
        store = IsoMetadataStore(tmp_path / "meta.json")
        record = make_record()
        store.save(record)

        assert store.get_all()[0].timestamp == record.timestamp
