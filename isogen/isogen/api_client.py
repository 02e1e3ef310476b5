"""HTTP client for the remote ISO generation backend."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp
import structlog
from pydantic import ValidationError

from builder.config import EndpointSettings

from .errors import (
    BackendError,
    BackendNotConfiguredError,
    InvalidBackendResponseError,
    IsoGenerationError,
)
from .models import IsoGenerationResponse, IsoGenerationStatus

if TYPE_CHECKING:
    from builder.config import BackendSettings

    from .models import IsoGenerationOptions

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def download_query(filename: str | None) -> str:
    """``?filename=...`` suffix for download URLs, empty without a filename."""
    return f"?filename={quote(filename, safe='')}" if filename else ""


class IsoApiClient:
    """Talks to the remote ISO generation API.

    A blank or missing ``api_url`` means the backend is not configured.
    """

    def __init__(
        self,
        api_url: str | None,
        endpoints: EndpointSettings | None = None,
        request_timeout_seconds: float = 10.0,
        timeout_seconds: float = 300.0,
    ) -> None:
        cleaned = api_url.strip() if api_url else ""
        self.api_url = cleaned.rstrip("/") or None
        self.endpoints = endpoints or EndpointSettings()
        self.request_timeout_seconds = request_timeout_seconds
        self.timeout_seconds = timeout_seconds
        self._log = logger.bind(component="iso_api_client", api_url=self.api_url)

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> IsoApiClient:
        return cls(
            settings.api_url,
            endpoints=settings.endpoints,
            request_timeout_seconds=settings.request_timeout_seconds,
            timeout_seconds=settings.timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self.api_url is not None

    def _url(self, path: str) -> str:
        if self.api_url is None:
            raise BackendNotConfiguredError()
        return f"{self.api_url}{path}"

    async def check_availability(self) -> bool:
        """Probe the health endpoint; any 2xx answer means available."""
        if not self.is_configured:
            return False

        timeout = aiohttp.ClientTimeout(total=self.request_timeout_seconds)
        try:
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(self._url(self.endpoints.health)) as response,
            ):
                if 200 <= response.status < 300:
                    self._log.debug("backend_available")
                    return True
                self._log.warning("backend_unavailable", status=response.status)
                return False
        except (TimeoutError, aiohttp.ClientError, OSError) as e:
            self._log.warning("backend_unavailable", error=str(e))
            return False

    async def _json_request(
        self,
        method: str,
        path: str,
        timeout_seconds: float,
        body: dict[str, Any] | None = None,
    ) -> Any:
        url = self._url(path)
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.request(method, url, json=body) as response,
            ):
                if not 200 <= response.status < 300:
                    raise BackendError(response.status, await response.text())
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidBackendResponseError(
                        f"Invalid response from backend: {e}"
                    ) from e
        except aiohttp.ClientError as e:
            raise IsoGenerationError(f"Failed to reach backend at {url}: {e}") from e
        except TimeoutError:
            raise IsoGenerationError(f"Failed to reach backend at {url}: timed out") from None

    async def request_generation(self, options: IsoGenerationOptions) -> IsoGenerationResponse:
        """Submit a generation request.

        Raises:
            BackendNotConfiguredError: If no API URL is set.
            BackendError: On a non-2xx answer.
            InvalidBackendResponseError: If the answer is not JSON or carries no job id.
            IsoGenerationError: On network failures.
        """
        try:
            data = await self._json_request(
                "POST",
                self.endpoints.generate_iso,
                self.request_timeout_seconds,
                body=options.request_body(),
            )
        except InvalidBackendResponseError as e:
            raise InvalidBackendResponseError() from e
        if not isinstance(data, dict) or not data.get("jobId"):
            raise InvalidBackendResponseError()

        response = IsoGenerationResponse(
            job_id=str(data["jobId"]),
            status=str(data.get("status") or "pending"),
        )
        self._log.info("generation_requested", job_id=response.job_id, build_id=options.build_id)
        return response

    async def check_status(self, job_id: str) -> IsoGenerationStatus:
        """Fetch the status of a remote job."""
        data = await self._json_request(
            "GET", f"{self.endpoints.status}/{job_id}", self.timeout_seconds
        )
        try:
            return IsoGenerationStatus.model_validate(data)
        except ValidationError as e:
            raise IsoGenerationError(f"Invalid status response for job {job_id}: {e}") from e

    def download_url(self, job_id: str, filename: str | None = None) -> str:
        return self._url(f"{self.endpoints.download}/{job_id}") + download_query(filename)

    async def download(self, job_id: str, destination: Path, filename: str | None = None) -> Path:
        """Stream a finished ISO to ``destination``.

        ``destination`` may be a directory, in which case the file is named
        ``filename`` or ``lfs-<job_id>.iso``.
        """
        name = filename or f"lfs-{job_id}.iso"
        target = destination / name if destination.is_dir() else destination
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.parent / f".{target.name}.download"

        url = self.download_url(job_id, filename)
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(url) as response,
            ):
                if not 200 <= response.status < 300:
                    raise BackendError(response.status, await response.text())
                size = 0
                with temp_path.open("wb") as f:
                    async for chunk in response.content.iter_chunked(DEFAULT_CHUNK_SIZE):
                        f.write(chunk)
                        size += len(chunk)
        except aiohttp.ClientError as e:
            temp_path.unlink(missing_ok=True)
            raise IsoGenerationError(f"Failed to download ISO for job {job_id}: {e}") from e
        except TimeoutError:
            temp_path.unlink(missing_ok=True)
            raise IsoGenerationError(
                f"Failed to download ISO for job {job_id}: timed out"
            ) from None
        except BackendError:
            temp_path.unlink(missing_ok=True)
            raise

        temp_path.replace(target)
        self._log.info("iso_downloaded", job_id=job_id, path=str(target), bytes=size)
        return target
