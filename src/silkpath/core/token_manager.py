"""Instagram token lifecycle management.

The stored token moves through four states:

========================  =================================================
State                     Meaning
========================  =================================================
``ABSENT``                No stored record.
``VALID``                 Expiry unknown, or more than the refresh window away.
``EXPIRING_SOON``         Expiry in the future but inside the refresh window.
``EXPIRED``               Expiry in the past.
========================  =================================================

On startup an ``EXPIRING_SOON`` token is refreshed once through the
``fb_exchange_token`` grant.  That refresh is best-effort: a failure is logged
and the old token stays in place.  An ``EXPIRED`` token is only reported; the
operator must paste a new token or re-run the OAuth flow.

Three operations produce a new record, and each saves only the fully
assembled record:

1. :meth:`TokenLifecycleManager.exchange_code`: OAuth callback.
2. :meth:`TokenLifecycleManager.refresh`: extend the current token.
3. :meth:`TokenLifecycleManager.connect_with_token`: manual token paste.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from silkpath.core.credentials import CredentialRecord, CredentialStore
from silkpath.core.exceptions import ConfigurationError, GraphAPIError, NoLinkedAccountError, StudioError
from silkpath.core.graph_client import GraphClient

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenState(str, Enum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


def classify_expiry(
    expires_at: datetime | None,
    now: datetime,
    refresh_window: timedelta,
) -> TokenState:
    """Classify a token expiry relative to ``now``.

    ``None`` means the expiry is unknown and is treated as valid.
    """
    if expires_at is None:
        return TokenState.VALID
    remaining = expires_at - now
    if remaining <= timedelta(0):
        return TokenState.EXPIRED
    if remaining < refresh_window:
        return TokenState.EXPIRING_SOON
    return TokenState.VALID


class TokenLifecycleManager:
    """Load, refresh, and replace the stored Instagram credential.

    Args:
        store: Credential store that owns the record.
        graph: Graph API client.
        redirect_uri: OAuth callback URL registered with the Facebook app.
        scope: Permissions requested in the OAuth dialog.
        page_id: When set, only this Facebook Page is considered.
        refresh_window: Tokens expiring sooner than this are refreshed on startup.
        token_lifetime: Expiry assumed when the exchange response omits ``expires_in``.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self,
        store: CredentialStore,
        graph: GraphClient,
        *,
        redirect_uri: str | None = None,
        scope: str = "",
        page_id: str | None = None,
        refresh_window: timedelta = timedelta(days=7),
        token_lifetime: timedelta = timedelta(days=60),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.graph = graph
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.page_id = page_id
        self.refresh_window = refresh_window
        self.token_lifetime = token_lifetime
        self.clock = clock

    @classmethod
    def from_config(cls, store: CredentialStore, graph: GraphClient, cfg, **kwargs) -> TokenLifecycleManager:
        return cls(
            store,
            graph,
            redirect_uri=cfg.oauth_redirect_uri,
            scope=cfg.oauth_scope,
            page_id=cfg.fb_page_id,
            refresh_window=timedelta(days=cfg.token_refresh_window_days),
            token_lifetime=timedelta(days=cfg.token_lifetime_days),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self) -> TokenState:
        record = self.store.record
        if record is None:
            return TokenState.ABSENT
        return classify_expiry(record.expires_at, self.clock(), self.refresh_window)

    def startup(self, *, background: bool = False) -> TokenState:
        """Load the stored credential and refresh it if it expires soon.

        Args:
            background: Run the refresh on a daemon thread instead of inline.

        Returns:
            The token state observed right after loading.
        """
        self.store.load()
        state = self.state()

        if state is TokenState.EXPIRING_SOON:
            remaining = self.store.record.expires_at - self.clock()
            logger.info(f"Token expires in {remaining.days} days - auto-refreshing...")
            if background:
                threading.Thread(target=self.auto_refresh, name="token-refresh", daemon=True).start()
            else:
                self.auto_refresh()
        elif state is TokenState.EXPIRED:
            logger.warning("Instagram token has expired. Paste a new token or reconnect Instagram.")
        elif state is TokenState.VALID:
            logger.info(f"Instagram connected as @{self.store.record.username}")

        return state

    def auto_refresh(self) -> bool:
        """Best-effort refresh; failures are logged and leave the record unchanged."""
        try:
            record = self.refresh()
        except StudioError as e:
            logger.error(f"Auto-refresh failed: {e}")
            return False
        logger.info(f"Token auto-refreshed, new expiry: {record.expires_at.isoformat()}")
        return True

    # ------------------------------------------------------------------
    # Token producing operations
    # ------------------------------------------------------------------

    def refresh(self) -> CredentialRecord:
        """Extend the current token through a single ``fb_exchange_token`` call.

        All other fields of the current record are preserved.

        Raises:
            ConfigurationError: Nothing is stored or the app credentials are
                missing.
            GraphAPIError: The exchange was rejected.
        """
        current = self.store.record
        if current is None:
            raise ConfigurationError("No stored Instagram token to refresh")
        self._require_app_credentials()

        data = self.graph.exchange_token(current.access_token)
        token = self._token_from(data)
        refreshed = current.model_copy(
            update={"access_token": token, "expires_at": self._expiry_from(data)}
        )
        self.store.save(refreshed)
        return refreshed

    def exchange_code(self, code: str) -> CredentialRecord:
        """Complete the OAuth flow from an authorization code."""
        self._require_app_credentials()
        if not self.redirect_uri:
            raise ConfigurationError("PUBLIC_URL is not configured")

        short_lived = self._token_from(self.graph.exchange_code(code, self.redirect_uri))
        return self._connect(short_lived)

    def connect_with_token(self, token: str) -> CredentialRecord:
        """Connect using a token pasted by the operator."""
        token = (token or "").strip()
        if not token:
            raise ConfigurationError("Token is required")
        self._require_app_credentials()
        return self._connect(token)

    def authorization_url(self) -> str:
        """URL of the OAuth dialog the operator is redirected to."""
        if not self.graph.app_id or not self.redirect_uri:
            raise ConfigurationError("FB_APP_ID and PUBLIC_URL must be configured")
        return self.graph.dialog_url(self.redirect_uri, self.scope)

    def disconnect(self) -> None:
        self.store.clear()
        logger.info("Instagram disconnected")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _connect(self, token: str) -> CredentialRecord:
        long_lived = self.graph.exchange_token(token)
        user_token = self._token_from(long_lived)
        logger.info("Got long-lived user token")

        account = self._find_linked_account(user_token)
        record = CredentialRecord(
            access_token=account["page_access_token"],
            user_id=account["id"],
            username=account.get("username"),
            page_id=account["page_id"],
            page_name=account.get("page_name"),
            expires_at=self._expiry_from(long_lived),
        )
        self.store.save(record)
        return record

    def _find_linked_account(self, user_token: str) -> dict:
        """Return the first page with a linked Instagram business account."""
        pages = self.graph.get("me/accounts", fields="id,name,access_token", access_token=user_token)
        candidates = pages.get("data") or []
        if self.page_id:
            candidates = [page for page in candidates if str(page.get("id")) == self.page_id]
        if not candidates:
            raise NoLinkedAccountError(
                "No Facebook Pages found. You need a Facebook Page linked to your Instagram account."
            )

        for page in candidates:
            info = self.graph.get(
                str(page["id"]),
                fields="instagram_business_account",
                access_token=user_token,
            )
            linked = info.get("instagram_business_account")
            if not linked:
                continue

            ig_id = str(linked["id"])
            profile = self.graph.get(ig_id, fields="username", access_token=user_token)
            logger.info(f"Found Instagram account @{profile.get('username')} on page {page.get('name')}")
            return {
                "id": ig_id,
                "username": profile.get("username"),
                "page_id": str(page["id"]),
                "page_name": page.get("name"),
                "page_access_token": page.get("access_token") or user_token,
            }

        raise NoLinkedAccountError(
            "No Instagram Business/Creator account found linked to your Facebook Pages."
        )

    def _expiry_from(self, data: dict) -> datetime:
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            return self.clock() + timedelta(seconds=expires_in)
        return self.clock() + self.token_lifetime

    @staticmethod
    def _token_from(data: dict) -> str:
        token = data.get("access_token")
        if not token:
            raise GraphAPIError("Graph API response did not include an access token")
        return token

    def _require_app_credentials(self) -> None:
        if not self.graph.app_id or not self.graph.app_secret:
            raise ConfigurationError("FB_APP_ID and FB_APP_SECRET must be configured")
