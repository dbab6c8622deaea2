"""Tests for silkpath.core.publisher — the container publish protocol.

Sleeps are recorded instead of performed, so the 30-check timeout runs
instantly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from silkpath.core.credentials import CredentialRecord, CredentialResolver, CredentialStore
from silkpath.core.exceptions import (
    ContainerProcessingError,
    ContainerTimeoutError,
    EmptyCaptionError,
    GraphAPIError,
    ImageURLError,
    NotConnectedError,
    TokenExpiredError,
)
from silkpath.core.publisher import PollPolicy, Publisher, container_status

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
IMAGE_URL = "https://studio.example.test/images/silk_wrap_1.png"
IMAGE_PATH = "/images/silk_wrap_1.png"
MEDIA_PATH = "/v18.0/1784/media"
PUBLISH_PATH = "/v18.0/1784/media_publish"
STATUS_PATH = "/v18.0/c-1"


@pytest.fixture
def store(test_config) -> CredentialStore:
    return CredentialStore(test_config.tokens_file)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def publisher(store, graph_client, test_config, sleeps) -> Publisher:
    resolver = CredentialResolver.from_config(store, test_config)
    return Publisher(
        resolver,
        graph_client,
        poll_policy=PollPolicy(interval=1.0, max_attempts=30, sleep=sleeps.append),
        clock=lambda: NOW,
    )


def _connect(store: CredentialStore, expires_at: datetime | None = None) -> None:
    store.save(
        CredentialRecord(
            access_token="page-token",
            user_id="1784",
            username="silkpath.co",
            expires_at=expires_at,
        )
    )


def _image_ok(graph_routes) -> None:
    graph_routes.add("HEAD", IMAGE_PATH, httpx.Response(200, headers={"content-type": "image/png"}))


def _form(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class TestContainerStatus:
    def test_status_code_preferred(self):
        assert container_status({"status_code": "IN_PROGRESS", "status": "x"}) == "IN_PROGRESS"

    def test_status_fallback(self):
        assert container_status({"status": "ERROR"}) == "ERROR"

    def test_missing_status_is_finished(self):
        assert container_status({"id": "c-1"}) == "FINISHED"


class TestPreconditions:
    """Local checks fail before any network call."""

    def test_not_connected(self, publisher, graph_routes):
        with pytest.raises(NotConnectedError):
            publisher.publish(IMAGE_URL, "caption")
        assert graph_routes.requests == []

    def test_expired_token(self, publisher, store, graph_routes):
        _connect(store, expires_at=NOW - timedelta(days=1))

        with pytest.raises(TokenExpiredError):
            publisher.publish(IMAGE_URL, "caption")
        assert graph_routes.requests == []

    def test_empty_caption(self, publisher, store, graph_routes):
        _connect(store)

        with pytest.raises(EmptyCaptionError):
            publisher.publish(IMAGE_URL, "   ")
        assert graph_routes.requests == []

    def test_expiring_soon_token_still_publishes(self, publisher, store, graph_routes):
        _connect(store, expires_at=NOW + timedelta(days=2))
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "FINISHED"})
        graph_routes.add("POST", PUBLISH_PATH, {"id": "m-1"})

        assert publisher.publish(IMAGE_URL, "caption") == "m-1"


class TestImageURLCheck:
    """Unreachable and non-image URLs are reported differently."""

    def test_unreachable(self, publisher, store, graph_routes):
        _connect(store)
        graph_routes.add("HEAD", IMAGE_PATH, httpx.Response(404))

        with pytest.raises(ImageURLError, match=r"not reachable \(HTTP 404\)"):
            publisher.publish(IMAGE_URL, "caption")
        assert graph_routes.calls("POST", MEDIA_PATH) == []

    def test_not_an_image(self, publisher, store, graph_routes):
        _connect(store)
        graph_routes.add(
            "HEAD", IMAGE_PATH, httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"})
        )

        with pytest.raises(ImageURLError, match="content type 'text/html") as excinfo:
            publisher.publish(IMAGE_URL, "caption")
        assert "not reachable" not in excinfo.value.message
        assert graph_routes.calls("POST", MEDIA_PATH) == []

    def test_transport_failure(self, store, test_config):
        from silkpath.core.graph_client import GraphClient

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        _connect(store)
        graph = GraphClient.from_config(test_config, transport=httpx.MockTransport(refuse))
        publisher = Publisher(CredentialResolver.from_config(store, test_config), graph, clock=lambda: NOW)

        with pytest.raises(GraphAPIError, match="Could not reach"):
            publisher.publish(IMAGE_URL, "caption")


class TestPublish:
    def test_success(self, publisher, store, graph_routes, sleeps):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "IN_PROGRESS"}, {"id": "c-1"})
        graph_routes.add("POST", PUBLISH_PATH, {"id": "m-1"})

        assert publisher.publish(IMAGE_URL, "Elegant silk wrap #hijabstyle") == "m-1"

        container = _form(graph_routes.calls("POST", MEDIA_PATH)[0])
        assert container["image_url"] == IMAGE_URL
        assert container["caption"] == "Elegant silk wrap #hijabstyle"
        assert container["media_type"] == "IMAGE"
        assert container["access_token"] == "page-token"

        assert len(graph_routes.calls("GET", STATUS_PATH)) == 2
        assert sleeps == [1.0, 1.0]

        published = _form(graph_routes.calls("POST", PUBLISH_PATH)[0])
        assert published["creation_id"] == "c-1"

    def test_environment_credentials(self, store, graph_client, graph_routes, make_config):
        cfg = make_config(instagram_access_token="env-token", instagram_user_id="1784")
        publisher = Publisher(
            CredentialResolver.from_config(store, cfg),
            graph_client,
            poll_policy=PollPolicy(sleep=lambda seconds: None),
            clock=lambda: NOW,
        )
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "FINISHED"})
        graph_routes.add("POST", PUBLISH_PATH, {"id": "m-9"})

        assert publisher.publish(IMAGE_URL, "caption") == "m-9"
        assert _form(graph_routes.calls("POST", MEDIA_PATH)[0])["access_token"] == "env-token"

    def test_timeout_after_thirty_checks(self, publisher, store, graph_routes, sleeps):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "IN_PROGRESS"})

        with pytest.raises(ContainerTimeoutError, match="Instagram is taking too long to process the image"):
            publisher.publish(IMAGE_URL, "caption")

        assert len(graph_routes.calls("GET", STATUS_PATH)) == 30
        assert len(sleeps) == 30
        assert graph_routes.calls("POST", PUBLISH_PATH) == []

    def test_error_status(self, publisher, store, graph_routes):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "IN_PROGRESS"}, {"status_code": "ERROR"})

        with pytest.raises(ContainerProcessingError, match="Instagram failed to process the image"):
            publisher.publish(IMAGE_URL, "caption")

        assert len(graph_routes.calls("GET", STATUS_PATH)) == 2
        assert graph_routes.calls("POST", PUBLISH_PATH) == []

    def test_expired_container(self, publisher, store, graph_routes):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "EXPIRED"})

        with pytest.raises(ContainerProcessingError):
            publisher.publish(IMAGE_URL, "caption")

    def test_error_object_in_success_response(self, publisher, store, graph_routes):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add(
            "POST",
            MEDIA_PATH,
            {"error": {"message": "Only photo or video can be accepted as media type.", "code": 9004}},
        )

        with pytest.raises(GraphAPIError, match="Only photo or video") as excinfo:
            publisher.publish(IMAGE_URL, "caption")
        assert excinfo.value.code == 9004
        assert graph_routes.calls("GET", STATUS_PATH) == []

    def test_publish_rejected(self, publisher, store, graph_routes):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, {"id": "c-1"})
        graph_routes.add("GET", STATUS_PATH, {"status_code": "FINISHED"})
        graph_routes.add(
            "POST",
            PUBLISH_PATH,
            httpx.Response(400, json={"error": {"message": "Application request limit reached"}}),
        )

        with pytest.raises(GraphAPIError, match="Application request limit reached") as excinfo:
            publisher.publish(IMAGE_URL, "caption")
        assert excinfo.value.http_status == 400

    def test_non_json_error_response(self, publisher, store, graph_routes):
        _connect(store)
        _image_ok(graph_routes)
        graph_routes.add("POST", MEDIA_PATH, httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(GraphAPIError, match="HTTP 502"):
            publisher.publish(IMAGE_URL, "caption")
