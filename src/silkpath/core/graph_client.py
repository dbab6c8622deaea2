"""Thin synchronous client for the Facebook Graph API.

All outbound HTTP from the token and publishing code goes through
:class:`GraphClient`.  It owns the versioned base URL and the decoding rule
shared by every Graph call: a non-2xx response and an ``error`` object inside
an otherwise successful response are treated identically and raised as
:class:`~silkpath.core.exceptions.GraphAPIError` carrying the upstream message.
Nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from silkpath.core.exceptions import GraphAPIError

logger = logging.getLogger(__name__)


class GraphClient:
    """Versioned Graph API client backed by ``httpx.Client``.

    Args:
        app_id: Facebook app id (may be ``None`` when OAuth is unconfigured).
        app_secret: Facebook app secret.
        base_url: Graph API host, e.g. ``https://graph.facebook.com``.
        dialog_base_url: Host serving the OAuth dialog.
        version: API version path segment, e.g. ``v18.0``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        app_id: str | None,
        app_secret: str | None,
        *,
        base_url: str = "https://graph.facebook.com",
        dialog_base_url: str = "https://www.facebook.com",
        version: str = "v18.0",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.version = version
        self.base_url = f"{base_url.rstrip('/')}/{version}"
        self.dialog_base_url = f"{dialog_base_url.rstrip('/')}/{version}"
        self._http = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, cfg, transport: httpx.BaseTransport | None = None) -> GraphClient:
        return cls(
            cfg.fb_app_id,
            cfg.fb_app_secret,
            base_url=cfg.graph_api_base,
            dialog_base_url=cfg.oauth_dialog_base,
            version=cfg.graph_api_version,
            timeout=cfg.http_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def get(self, path: str, **params: Any) -> dict:
        """GET ``/{version}/{path}`` and return the decoded JSON payload."""
        return self._request("GET", path, params=params)

    def post(self, path: str, data: dict[str, Any]) -> dict:
        """POST form-encoded ``data`` to ``/{version}/{path}``."""
        return self._request("POST", path, data=data)

    def head(self, url: str) -> httpx.Response:
        """Issue a header-only request against an arbitrary absolute URL.

        Redirects are followed because the platform follows them as well.
        Transport failures are raised as :class:`GraphAPIError`.
        """
        try:
            return self._http.head(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise GraphAPIError(f"Could not reach {url}: {exc}") from exc

    def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise GraphAPIError(f"Graph API request failed: {exc}") from exc
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            error = payload["error"]
            if isinstance(error, dict):
                message = error.get("message") or "Unknown Graph API error"
                code = error.get("code")
            else:
                message, code = str(error), None
            raise GraphAPIError(message, http_status=response.status_code, code=code)

        if response.is_error:
            body = response.text[:200].strip()
            raise GraphAPIError(
                f"Graph API returned HTTP {response.status_code}: {body or response.reason_phrase}",
                http_status=response.status_code,
            )

        if not isinstance(payload, dict):
            raise GraphAPIError(
                "Graph API returned a non-JSON response",
                http_status=response.status_code,
            )
        return payload

    # ------------------------------------------------------------------
    # OAuth helpers
    # ------------------------------------------------------------------

    def dialog_url(self, redirect_uri: str, scope: str) -> str:
        """Build the OAuth dialog URL the browser is redirected to."""
        query = urlencode(
            {
                "client_id": self.app_id or "",
                "redirect_uri": redirect_uri,
                "scope": scope,
                "response_type": "code",
            }
        )
        return f"{self.dialog_base_url}/dialog/oauth?{query}"

    def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """Trade an authorization code for a short-lived user token."""
        return self.get(
            "oauth/access_token",
            client_id=self.app_id,
            client_secret=self.app_secret,
            redirect_uri=redirect_uri,
            code=code,
        )

    def exchange_token(self, token: str) -> dict:
        """Trade a token for a long-lived (~60 day) token."""
        return self.get(
            "oauth/access_token",
            grant_type="fb_exchange_token",
            client_id=self.app_id,
            client_secret=self.app_secret,
            fb_exchange_token=token,
        )
