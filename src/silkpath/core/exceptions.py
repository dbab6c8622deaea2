"""Exception hierarchy for SilkPath Studio.

Every error raised by the token, publishing, and gallery code derives from
:class:`StudioError`.  Each class carries the HTTP status the dashboard
reports it with, so route handlers can let these propagate and a single
exception handler turns them into ``{"detail": "..."}`` responses.
"""

from __future__ import annotations


class StudioError(Exception):
    """Base class for all SilkPath Studio errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(StudioError):
    """Required configuration (app id/secret, public URL, API key) is missing."""

    status_code = 400


class GraphAPIError(StudioError):
    """The Graph API returned a non-2xx response or an embedded error object.

    Attributes:
        http_status: HTTP status of the upstream response, if any.
        code: Upstream error code, if the payload carried one.
    """

    status_code = 502

    def __init__(self, message: str, *, http_status: int | None = None, code: int | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.code = code


class NoLinkedAccountError(StudioError):
    """None of the user's pages has an Instagram business/creator account."""

    status_code = 400


class PreconditionError(StudioError):
    """A local check failed before any network call was attempted."""

    status_code = 400


class NotConnectedError(PreconditionError):
    """No credential is available from any tier."""


class TokenExpiredError(PreconditionError):
    """The stored token is past its expiry."""


class ImageURLError(PreconditionError):
    """The public image URL is unreachable or does not serve an image."""


class EmptyCaptionError(PreconditionError):
    """A caption is required but was empty."""


class ImageNotFoundError(StudioError, LookupError):
    """No gallery record matches the requested id."""

    status_code = 404


class PublishError(StudioError):
    """The platform rejected or did not finish processing the media container."""

    status_code = 502


class ContainerProcessingError(PublishError):
    """The container status reached a terminal failure state."""


class ContainerTimeoutError(PublishError):
    """The container was still processing when the poll budget ran out."""

    status_code = 504


class GenerationError(StudioError):
    """The generation driver failed or could not produce an image."""

    status_code = 500
