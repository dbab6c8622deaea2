"""Publish a generated image to Instagram through the Graph API.

Publishing is a fixed sequence of remote steps with no retries:

1. ``HEAD`` the public image URL.  Instagram fetches the URL itself and
   reports an unreachable URL with a vague error, so it is checked first.
2. Create a media container (``POST /{ig-user-id}/media``).
3. Poll the container (``GET /{container-id}?fields=status_code,status``)
   until it leaves ``IN_PROGRESS``.  A response without either field is
   treated as ready; this mirrors observed Graph API behaviour and is not a
   documented contract.
4. Publish the container (``POST /{ig-user-id}/media_publish``).

A failure at any step aborts the attempt.  The publisher knows nothing about
the gallery; marking a record as posted is the caller's job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from silkpath.core.credentials import ActiveCredentials, CredentialResolver
from silkpath.core.exceptions import (
    ContainerProcessingError,
    ContainerTimeoutError,
    EmptyCaptionError,
    GraphAPIError,
    ImageURLError,
    NotConnectedError,
    TokenExpiredError,
)
from silkpath.core.graph_client import GraphClient
from silkpath.core.token_manager import TokenState, classify_expiry, utcnow

logger = logging.getLogger(__name__)

IN_PROGRESS = "IN_PROGRESS"
FINISHED = "FINISHED"


@dataclass(frozen=True)
class PollPolicy:
    """Bounded sleep-then-check policy for container readiness.

    Attributes:
        interval: Seconds to wait before each status check.
        max_attempts: Number of status checks before giving up.
        failed_statuses: Statuses that end the poll as a processing failure.
        sleep: Sleep function (tests pass a no-op recorder).
    """

    interval: float = 1.0
    max_attempts: int = 30
    failed_statuses: frozenset[str] = frozenset({"ERROR", "EXPIRED"})
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def is_pending(self, status: str) -> bool:
        return status == IN_PROGRESS

    def is_failed(self, status: str) -> bool:
        return status in self.failed_statuses


def container_status(payload: dict) -> str:
    """Extract the container status, treating a missing field as ready."""
    return payload.get("status_code") or payload.get("status") or FINISHED


class Publisher:
    """Drive the container create / poll / publish protocol.

    Args:
        resolver: Supplies the credentials used for every call.
        graph: Graph API client.
        poll_policy: Readiness poll timing.
        refresh_window: Only used to classify the token state.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        graph: GraphClient,
        *,
        poll_policy: PollPolicy | None = None,
        refresh_window: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.resolver = resolver
        self.graph = graph
        self.poll_policy = poll_policy or PollPolicy()
        self.refresh_window = refresh_window
        self.clock = clock

    def publish(self, image_url: str, caption: str) -> str:
        """Publish ``image_url`` with ``caption`` and return the new media id.

        Raises:
            NotConnectedError: No credentials from any tier.
            TokenExpiredError: The stored token is past its expiry.
            EmptyCaptionError: ``caption`` is blank.
            ImageURLError: The pre-flight check failed.
            GraphAPIError: Any Graph call was rejected.
            ContainerProcessingError: The container reached a failed status.
            ContainerTimeoutError: The container was still processing after
                the poll budget.
        """
        credentials = self._require_credentials()
        if not caption or not caption.strip():
            raise EmptyCaptionError("Caption is required to post to Instagram")

        logger.info(f"Posting to Instagram as @{credentials.username}: {image_url}")
        self.check_image_url(image_url)
        creation_id = self.create_container(credentials, image_url, caption)
        self.wait_until_ready(credentials, creation_id)
        media_id = self.publish_container(credentials, creation_id)
        logger.info(f"Published Instagram media {media_id}")
        return media_id

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _require_credentials(self) -> ActiveCredentials:
        credentials = self.resolver.current_credentials()
        if credentials is None:
            raise NotConnectedError(
                'Instagram not connected. Click "Connect Instagram" to authenticate.'
            )
        state = classify_expiry(credentials.expires_at, self.clock(), self.refresh_window)
        if state is TokenState.EXPIRED:
            raise TokenExpiredError(
                "Instagram token has expired. Paste a new token or reconnect Instagram."
            )
        return credentials

    def check_image_url(self, image_url: str) -> None:
        response = self.graph.head(image_url)
        if not response.is_success:
            raise ImageURLError(
                f"Image URL is not reachable (HTTP {response.status_code}). "
                "Check that PUBLIC_URL points at this dashboard and is reachable from the internet."
            )
        content_type = response.headers.get("content-type", "")
        if not content_type.lower().startswith("image/"):
            raise ImageURLError(
                f"Image URL returned content type '{content_type or 'unknown'}' instead of an image. "
                "PUBLIC_URL may be serving a login or tunnel warning page."
            )

    def create_container(self, credentials: ActiveCredentials, image_url: str, caption: str) -> str:
        data = self.graph.post(
            f"{credentials.user_id}/media",
            {
                "image_url": image_url,
                "caption": caption,
                "media_type": "IMAGE",
                "access_token": credentials.access_token,
            },
        )
        creation_id = data.get("id")
        if not creation_id:
            raise GraphAPIError("Media container response did not include an id")
        logger.info(f"Created media container {creation_id}")
        return str(creation_id)

    def wait_until_ready(self, credentials: ActiveCredentials, creation_id: str) -> str:
        """Poll the container until it is no longer in progress.

        Returns:
            The final container status.
        """
        policy = self.poll_policy
        status = IN_PROGRESS
        attempts = 0

        while policy.is_pending(status) and attempts < policy.max_attempts:
            policy.sleep(policy.interval)
            payload = self.graph.get(
                creation_id,
                fields="status_code,status",
                access_token=credentials.access_token,
            )
            status = container_status(payload)
            attempts += 1
            logger.debug(f"Container {creation_id} status after {attempts} checks: {status}")

        if policy.is_failed(status):
            raise ContainerProcessingError(f"Instagram failed to process the image (status {status})")
        if policy.is_pending(status):
            raise ContainerTimeoutError(
                f"Instagram is taking too long to process the image "
                f"(still {IN_PROGRESS} after {attempts} checks)"
            )
        return status

    def publish_container(self, credentials: ActiveCredentials, creation_id: str) -> str:
        data = self.graph.post(
            f"{credentials.user_id}/media_publish",
            {"creation_id": creation_id, "access_token": credentials.access_token},
        )
        media_id = data.get("id")
        if not media_id:
            raise GraphAPIError("Publish response did not include a media id")
        return str(media_id)
