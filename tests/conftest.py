"""Shared fixtures: a local aiohttp server posing as the API."""

from __future__ import annotations

import gzip
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from VirusTotal.Core.authenticator import APIKeyAuthenticator
from VirusTotal.Core.endpoint_client import (
    EndpointClient,
    EndpointClientConfig,
    VirusTotalURLProvider,
)

API_PREFIX = "/api/v3/"


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str]
    body: bytes


@dataclass
class Route:
    method: str
    path: str
    query: Optional[Dict[str, str]]
    status: int
    body: bytes
    contentType: str
    gzipped: bool


@dataclass
class FakeAPI:
    server: Optional[TestServer] = None
    routes: List[Route] = field(default_factory=list)
    requests: List[RecordedRequest] = field(default_factory=list)

    def url(self, path: str) -> str:
        return str(self.server.make_url(API_PREFIX + path.lstrip("/")))

    def setResponse(
        self,
        method: str,
        path: str,
        response: Any,
        status: int = 200,
        query: Optional[Dict[str, str]] = None,
    ) -> "FakeAPI":
        self.routes.append(
            Route(
                method,
                API_PREFIX + path.lstrip("/"),
                query,
                status,
                json.dumps(response).encode(),
                "application/json",
                True,
            )
        )
        return self

    def setRawResponse(
        self,
        method: str,
        path: str,
        body: bytes,
        contentType: str,
        status: int = 200,
    ) -> "FakeAPI":
        self.routes.append(
            Route(method, API_PREFIX + path.lstrip("/"), None, status, body, contentType, False)
        )
        return self

    def requestsTo(self, path: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.path == API_PREFIX + path.lstrip("/")]

    async def handler(self, request: web.Request) -> web.Response:
        self.requests.append(
            RecordedRequest(
                request.method,
                request.path,
                dict(request.query),
                dict(request.headers),
                await request.read(),
            )
        )
        for route in self.routes:
            if route.method != request.method or route.path != request.path:
                continue
            if route.query is not None and route.query != dict(request.query):
                continue
            if not route.gzipped:
                return web.Response(
                    body=route.body, status=route.status, content_type=route.contentType
                )
            return web.Response(
                body=gzip.compress(route.body),
                status=route.status,
                content_type=route.contentType,
                headers={"Content-Encoding": "gzip"},
            )

        return web.json_response(
            {"error": {"code": "NotFoundError", "message": f"{request.path} not found"}},
            status=404,
        )


@pytest_asyncio.fixture
async def api():
    fake = FakeAPI()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handler)
    server = TestServer(app)
    await server.start_server()
    fake.server = server
    try:
        yield fake
    finally:
        await server.close()


@pytest.fixture
def client(api: FakeAPI) -> EndpointClient:
    return EndpointClient(
        EndpointClientConfig(
            authenticator=APIKeyAuthenticator("api_key"),
            urlProvider=VirusTotalURLProvider(baseURL=api.url("")),
        )
    )
