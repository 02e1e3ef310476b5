"""Tests for the remote ISO backend client."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from builder.config import BackendSettings
from isogen.api_client import IsoApiClient, download_query
from isogen.errors import (
    BackendError,
    BackendNotConfiguredError,
    InvalidBackendResponseError,
    IsoGenerationError,
)
from isogen.models import IsoGenerationOptions, JobStatus

OPTIONS = IsoGenerationOptions(
    build_id="build-1",
    source_dir="/mnt/lfs",
    output_path="/tmp/iso/lfs.iso",
    label="LFS",
    bootloader="isolinux",
)


class TestConfiguration:
    """Tests for backend configuration handling."""

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_blank_url_is_unconfigured(self, url: str | None) -> None:
        """Test that blank URLs mean no backend."""
        client = IsoApiClient(url)

        assert client.is_configured is False
        assert client.api_url is None

    def test_trailing_slash_is_dropped(self) -> None:
        """Test URL normalisation."""
        assert IsoApiClient(" http://iso:3000/ ").api_url == "http://iso:3000"

    def test_from_settings(self) -> None:
        """Test construction from backend settings."""
        settings = BackendSettings(api_url="http://iso:3000", request_timeout_seconds=5)
        client = IsoApiClient.from_settings(settings)

        assert client.api_url == "http://iso:3000"
        assert client.request_timeout_seconds == 5

    @pytest.mark.asyncio
    async def test_unconfigured_calls(self) -> None:
        """Test that an unconfigured client never reaches the network."""
        client = IsoApiClient(None)

        assert await client.check_availability() is False
        with pytest.raises(BackendNotConfiguredError):
            await client.request_generation(OPTIONS)

    def test_download_urls(self) -> None:
        """Test download URL construction."""
        client = IsoApiClient("http://iso:3000")

        assert client.download_url("job-1") == "http://iso:3000/api/iso/download/job-1"
        assert (
            client.download_url("job-1", "my lfs.iso")
            == "http://iso:3000/api/iso/download/job-1?filename=my%20lfs.iso"
        )
        assert download_query(None) == ""


class TestBackendCalls:
    """Tests against a fake backend server."""

    @pytest.mark.asyncio
    async def test_check_availability(self, iso_backend: Any, backend_server: Any) -> None:
        """Test the health probe."""
        async with backend_server(iso_backend) as url:
            client = IsoApiClient(url)
            assert await client.check_availability() is True

            iso_backend.health_status = 503
            assert await client.check_availability() is False

    @pytest.mark.asyncio
    async def test_unreachable_backend(self) -> None:
        """Test that connection failures mean unavailable."""
        client = IsoApiClient("http://127.0.0.1:1", request_timeout_seconds=2)

        assert await client.check_availability() is False
        with pytest.raises(IsoGenerationError, match="Failed to reach backend"):
            await client.request_generation(OPTIONS)

    @pytest.mark.asyncio
    async def test_request_generation(self, iso_backend: Any, backend_server: Any) -> None:
        """Test submitting a generation request."""
        async with backend_server(iso_backend) as url:
            response = await IsoApiClient(url).request_generation(OPTIONS)

        assert response.job_id == "job-1"
        assert response.status == "pending"
        _, path, body = iso_backend.requests[0]
        assert path == "/api/iso/generate"
        assert body == {
            "buildId": "build-1",
            "label": "LFS",
            "bootable": True,
            "bootloader": "isolinux",
            "sourceDir": "/mnt/lfs",
        }

    @pytest.mark.asyncio
    async def test_response_without_job_id(self, iso_backend: Any, backend_server: Any) -> None:
        """Test that answers without a job id are rejected."""
        iso_backend.generate_payload = {"status": "pending"}
        async with backend_server(iso_backend) as url:
            with pytest.raises(InvalidBackendResponseError):
                await IsoApiClient(url).request_generation(OPTIONS)

    @pytest.mark.asyncio
    async def test_backend_error(self, iso_backend: Any, backend_server: Any) -> None:
        """Test that non-2xx answers raise BackendError."""
        iso_backend.generate_status = 500
        async with backend_server(iso_backend) as url:
            with pytest.raises(BackendError) as exc_info:
                await IsoApiClient(url).request_generation(OPTIONS)

        assert exc_info.value.status == 500
        assert str(exc_info.value) == "Backend error: 500 builder offline"

    @pytest.mark.asyncio
    async def test_check_status(self, iso_backend: Any, backend_server: Any) -> None:
        """Test reading a camelCase status answer."""
        iso_backend.statuses["job-1"] = {
            "status": "completed",
            "progress": 100,
            "message": "done",
            "downloadUrl": "http://iso/download/job-1",
        }
        async with backend_server(iso_backend) as url:
            status = await IsoApiClient(url).check_status("job-1")

        assert status.status == JobStatus.COMPLETED
        assert status.progress == 100
        assert status.download_url == "http://iso/download/job-1"

    @pytest.mark.asyncio
    async def test_non_json_answers(self, iso_backend: Any, backend_server: Any) -> None:
        """Test that a 2xx HTML page is reported as an invalid response."""
        iso_backend.html_body = "<html>proxy login</html>"
        async with backend_server(iso_backend) as url:
            client = IsoApiClient(url)
            with pytest.raises(InvalidBackendResponseError) as generate_info:
                await client.request_generation(OPTIONS)
            with pytest.raises(InvalidBackendResponseError) as status_info:
                await client.check_status("job-1")

        assert str(generate_info.value) == "Invalid response from backend, no job ID returned"
        assert str(status_info.value).startswith("Invalid response from backend: ")

    @pytest.mark.asyncio
    async def test_check_status_unknown_job(self, iso_backend: Any, backend_server: Any) -> None:
        """Test a status request for a job the backend does not know."""
        async with backend_server(iso_backend) as url:
            with pytest.raises(BackendError):
                await IsoApiClient(url).check_status("nope")

    @pytest.mark.asyncio
    async def test_download(
        self, iso_backend: Any, backend_server: Any, tmp_path: Path
    ) -> None:
        """Test streaming an ISO into a directory."""
        async with backend_server(iso_backend) as url:
            path = await IsoApiClient(url).download("job-1", tmp_path)

        assert path == tmp_path / "lfs-job-1.iso"
        assert path.read_bytes() == iso_backend.iso_bytes
        assert list(tmp_path.iterdir()) == [path]

    @pytest.mark.asyncio
    async def test_download_with_filename(
        self, iso_backend: Any, backend_server: Any, tmp_path: Path
    ) -> None:
        """Test that a filename names the file and is passed to the backend."""
        async with backend_server(iso_backend) as url:
            path = await IsoApiClient(url).download("job-1", tmp_path, "custom.iso")

        assert path.name == "custom.iso"
        assert iso_backend.requests[-1][1] == "/api/iso/download/job-1?filename=custom.iso"
