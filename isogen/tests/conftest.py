"""Shared fixtures for ISO generation tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import test_utils, web


class FakeIsoBackend:
    """Stand-in for the remote ISO generation API."""

    def __init__(self) -> None:
        self.health_status = 200
        self.generate_status = 200
        self.generate_payload: dict[str, Any] = {"jobId": "job-1", "status": "pending"}
        self.statuses: dict[str, dict[str, Any]] = {}
        self.iso_bytes = b"ISO9660" * 100
        self.requests: list[tuple[str, str, Any]] = []
        self.html_body: str | None = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health)
        app.router.add_post("/api/iso/generate", self.generate)
        app.router.add_get("/api/iso/status/{job_id}", self.status)
        app.router.add_get("/api/iso/download/{job_id}", self.download)
        return app

    async def health(self, request: web.Request) -> web.Response:
        return web.Response(status=self.health_status, text="ok")

    async def generate(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(("POST", request.path, body))
        if self.generate_status != 200:
            return web.Response(status=self.generate_status, text="builder offline")
        if self.html_body is not None:
            return web.Response(text=self.html_body, content_type="text/html")
        return web.json_response(self.generate_payload)

    async def status(self, request: web.Request) -> web.Response:
        job_id = request.match_info["job_id"]
        self.requests.append(("GET", request.path, None))
        if self.html_body is not None:
            return web.Response(text=self.html_body, content_type="text/html")
        if job_id not in self.statuses:
            return web.Response(status=404, text="unknown job")
        return web.json_response(self.statuses[job_id])

    async def download(self, request: web.Request) -> web.Response:
        self.requests.append(("GET", request.path_qs, None))
        return web.Response(body=self.iso_bytes, content_type="application/octet-stream")


@asynccontextmanager
async def serve_backend(backend: FakeIsoBackend) -> AsyncIterator[str]:
    """Run ``backend`` and yield its base URL."""
    async with test_utils.TestServer(backend.app()) as server:
        yield str(server.make_url("")).rstrip("/")


@pytest.fixture
def iso_backend() -> FakeIsoBackend:
    """A fresh fake backend; serve it with the ``backend_server`` fixture."""
    return FakeIsoBackend()


@pytest.fixture
def backend_server() -> Any:
    return serve_backend
