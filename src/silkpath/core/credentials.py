"""Instagram credential storage and two-tier credential resolution.

The stored credential is a single JSON document (``.instagram-tokens.json``)::

    {
      "accessToken": "...",
      "userId": "17841400000000000",
      "username": "silkpath.co",
      "pageId": "1022163574308658",
      "pageName": "SilkPath",
      "expiresAt": "2026-12-18T10:00:00Z"
    }

A record is either absent or carries at least ``accessToken`` and ``userId``.
A missing ``expiresAt`` means the expiry is unknown and the token is treated
as non-expiring.

:class:`CredentialStore` owns that file and keeps an in-memory copy that every
write replaces.  :class:`CredentialResolver` decides which credentials a
publish call uses: the stored record first, then the ``INSTAGRAM_*``
environment pair.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class CredentialRecord(BaseModel):
    """Stored credential for the publishing account."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    username: str | None = None
    page_id: str | None = Field(default=None, alias="pageId")
    page_name: str | None = Field(default=None, alias="pageName")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class CredentialStore:
    """File-backed holder of the single credential record.

    Args:
        path: Location of the credential JSON document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._record: CredentialRecord | None = None

    @property
    def record(self) -> CredentialRecord | None:
        return self._record

    def load(self) -> CredentialRecord | None:
        """Read the credential file into memory.

        A missing, unreadable, or invalid file leaves the in-memory record
        unset.  Never raises.
        """
        self._record = None
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as handle:
                self._record = CredentialRecord.model_validate(json.load(handle))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Ignoring unreadable credential file {self.path}: {e}")
            self._record = None
        return self._record

    def save(self, record: CredentialRecord) -> None:
        """Replace the stored record and rewrite the whole file."""
        self._record = record
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record.to_document(), handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(f"Saved Instagram credentials for @{record.username or record.user_id}")

    def clear(self) -> None:
        """Forget the stored record.  Safe to call when nothing is stored."""
        self._record = None
        self.path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActiveCredentials:
    """Credentials selected for a Graph API call."""

    access_token: str
    user_id: str
    username: str | None
    expires_at: datetime | None
    source: str


class CredentialSource(Protocol):
    def resolve(self) -> ActiveCredentials | None: ...


class StoredCredentialSource:
    """First tier: the record held by a :class:`CredentialStore`."""

    def __init__(self, store: CredentialStore):
        self.store = store

    def resolve(self) -> ActiveCredentials | None:
        record = self.store.record
        if record is None or not record.access_token:
            return None
        return ActiveCredentials(
            access_token=record.access_token,
            user_id=record.user_id,
            username=record.username,
            expires_at=record.expires_at,
            source="stored",
        )


class EnvironmentCredentialSource:
    """Second tier: a long-lived token and account id from the environment."""

    def __init__(self, access_token: str | None, user_id: str | None, username: str):
        self.access_token = access_token
        self.user_id = user_id
        self.username = username

    def resolve(self) -> ActiveCredentials | None:
        if not self.access_token or not self.user_id:
            return None
        return ActiveCredentials(
            access_token=self.access_token,
            user_id=self.user_id,
            username=self.username,
            expires_at=None,
            source="environment",
        )


class CredentialResolver:
    """Return the first credential tier that yields a usable token."""

    def __init__(self, sources: list[CredentialSource]):
        self.sources = list(sources)

    @classmethod
    def from_config(cls, store: CredentialStore, cfg) -> CredentialResolver:
        return cls(
            [
                StoredCredentialSource(store),
                EnvironmentCredentialSource(
                    cfg.instagram_access_token,
                    cfg.instagram_user_id,
                    cfg.instagram_username,
                ),
            ]
        )

    def current_credentials(self) -> ActiveCredentials | None:
        for source in self.sources:
            credentials = source.resolve()
            if credentials is not None:
                return credentials
        return None
