"""Core functionality for SilkPath Studio.

This module provides the components shared by the dashboard and the
generation driver:

- **StudioConfig / config**: Configuration management using Pydantic Settings
- **CredentialStore / CredentialResolver**: Stored Instagram credential and
  the stored-or-environment resolution strategy
- **TokenLifecycleManager**: OAuth code exchange, token refresh, manual token
  connection
- **Publisher**: Container create / poll / publish protocol
- **GalleryStore**: ``gallery.json`` persistence

Architecture Overview
---------------------
1. **Configuration Layer** (config.py)
2. **Graph API Layer** (graph_client.py): versioned ``httpx`` client that
   turns every upstream failure into ``GraphAPIError``
3. **Instagram Layer** (credentials.py, token_manager.py, publisher.py)
4. **Storage Layer** (gallery_store.py)
"""

from silkpath.core.config import StudioConfig, config
from silkpath.core.credentials import CredentialRecord, CredentialResolver, CredentialStore
from silkpath.core.gallery_store import GalleryStore
from silkpath.core.graph_client import GraphClient
from silkpath.core.publisher import PollPolicy, Publisher
from silkpath.core.token_manager import TokenLifecycleManager, TokenState

__all__ = [
    "CredentialRecord",
    "CredentialResolver",
    "CredentialStore",
    "GalleryStore",
    "GraphClient",
    "PollPolicy",
    "Publisher",
    "StudioConfig",
    "TokenLifecycleManager",
    "TokenState",
    "config",
]
