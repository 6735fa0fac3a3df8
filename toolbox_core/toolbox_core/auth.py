from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, Optional

from google.auth.transport.requests import Request
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

AUTH_HEADER_SUFFIX = "_token"


def auth_header_name(service: str) -> str:
    """Header carrying the token of an auth service, e.g. ``my-oauth_token``."""
    return f"{service}{AUTH_HEADER_SUFFIX}"


class IdTokenCache:
    """Per-audience cache of Google ID token credentials.

    Credentials are fetched once per audience and refreshed whenever they are
    no longer valid. The request factory builds the google-auth HTTP transport
    used for fetching and refreshing.
    """

    def __init__(self, request_factory: Callable[[], Any] = Request):
        self._request_factory = request_factory
        self._credentials: Dict[str, Any] = {}
        # get_token runs in worker threads; one fetch/refresh at a time
        self._lock = threading.Lock()

    def get_token(self, audience: str) -> str:
        with self._lock:
            request = self._request_factory()
            creds = self._credentials.get(audience)
            if creds is None:
                creds = id_token.fetch_id_token_credentials(audience, request=request)
                self._credentials[audience] = creds
            if not creds.valid:
                logger.debug(f"Refreshing ID token for {audience}")
                creds.refresh(request)
            return creds.token

    def clear(self) -> None:
        with self._lock:
            self._credentials.clear()


_default_cache: Optional[IdTokenCache] = None


def get_default_cache() -> IdTokenCache:
    # created on first use; lives for the rest of the process
    global _default_cache
    if _default_cache is None:
        _default_cache = IdTokenCache()
    return _default_cache


async def get_google_id_token(url: str, cache: Optional[IdTokenCache] = None) -> str:
    """Return ``Bearer <id token>`` for service-to-service calls to ``url``.

    Intended as a client header, e.g.
    ``ToolboxClient(url, client_headers={"Authorization": lambda: get_google_id_token(url)})``.
    """
    cache = cache or get_default_cache()
    token = await asyncio.to_thread(cache.get_token, url)
    return f"Bearer {token}"
