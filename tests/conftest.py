"""Shared pytest fixtures for SilkPath Studio tests."""

import json
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from silkpath.api.main import create_app
from silkpath.core.config import StudioConfig
from silkpath.core.graph_client import GraphClient
from silkpath.core.publisher import PollPolicy

PUBLIC_URL = "https://studio.example.test"


class GraphRoutes:
    """Scripted responses for an ``httpx.MockTransport``.

    Responses are queued per ``(method, path)``.  Each request consumes the
    next queued response; the last one is repeated once the queue is down to
    a single entry.  Every request is recorded.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses) -> None:
        """Queue responses: dicts are JSON 200 bodies, or full ``httpx.Response`` objects."""
        self.routes.setdefault((method, path), []).extend(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(
                404,
                json={"error": {"message": f"Unexpected {request.method} {request.url.path}"}},
            )
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, httpx.Response):
            return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)
        return httpx.Response(200, json=reply)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def make_config(temp_dir: Path) -> Callable[..., StudioConfig]:
    """Factory for configurations rooted in the temporary directory.

    Keyword arguments override the test defaults.  The ``.env`` file is
    never read.
    """

    def _make(**overrides) -> StudioConfig:
        values = {
            "fb_app_id": "app-id",
            "fb_app_secret": "app-secret",
            "public_url": PUBLIC_URL,
            "fb_page_id": None,
            "instagram_access_token": None,
            "instagram_user_id": None,
            "style_input_dir": temp_dir / "style_input",
            "hijab_input_dir": temp_dir / "hijab_input",
            "output_dir": temp_dir / "output_folder",
            "tokens_file": temp_dir / ".instagram-tokens.json",
            "openai_api_key": None,
            "gemini_api_key": None,
            "generation_delay": 0.0,
        }
        values.update(overrides)
        return StudioConfig(_env_file=None, **values)

    return _make


@pytest.fixture
def test_config(make_config) -> StudioConfig:
    """Create a test configuration with temporary directories.

    Returns:
        StudioConfig instance for testing
    """
    return make_config()


@pytest.fixture
def graph_routes() -> GraphRoutes:
    return GraphRoutes()


@pytest.fixture
def graph_client(test_config: StudioConfig, graph_routes: GraphRoutes) -> Generator[GraphClient, None, None]:
    """Graph API client whose traffic is answered by ``graph_routes``."""
    client = GraphClient.from_config(test_config, transport=httpx.MockTransport(graph_routes))
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def write_tokens(test_config: StudioConfig) -> Callable[..., Path]:
    """Write a credential document to the configured tokens file."""

    def _write(**fields) -> Path:
        document = {
            "accessToken": "stored-token",
            "userId": "17841400000000000",
            "username": "silkpath.co",
            "pageId": "222",
            "pageName": "SilkPath",
        }
        document.update(fields)
        test_config.tokens_file.write_text(json.dumps(document))
        return test_config.tokens_file

    return _write


@pytest.fixture
def no_sleep_policy() -> PollPolicy:
    return PollPolicy(interval=0.0, max_attempts=30, sleep=lambda seconds: None)


@pytest.fixture
def make_client(make_config, graph_routes: GraphRoutes, no_sleep_policy: PollPolicy):
    """Factory for dashboard test clients.

    Args passed through: ``runner`` for ``POST /api/generate`` and any
    configuration overrides.
    """
    clients = []

    def _make(runner=None, **overrides) -> TestClient:
        cfg = make_config(**overrides)
        graph = GraphClient.from_config(cfg, transport=httpx.MockTransport(graph_routes))
        app = create_app(cfg, graph_client=graph, poll_policy=no_sleep_policy, runner=runner)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def test_client(make_client) -> TestClient:
    """Dashboard client with OAuth configured and no stored credential."""
    return make_client()


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    from io import BytesIO

    from PIL import Image

    buffer = BytesIO()
    Image.new("RGB", (8, 8), (201, 168, 124)).save(buffer, format="PNG")
    return buffer.getvalue()
