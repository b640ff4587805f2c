"""Decide whether a pubkey may upload or delete blobs.

Two policies exist and exactly one is active, picked from settings at
startup: a local allow-list stored in the database, or a remote service that
answers ``{"accept": true}`` for pubkeys it trusts. Both fail closed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from .allowlist import AllowList
from .config import AuthMode, Settings
from .errors import InvalidPubkey
from .pubkey import hex_to_npub, normalize_pubkey

logger = logging.getLogger(__name__)


class AccessPolicy(ABC):
    @abstractmethod
    async def is_allowed(self, pubkey: str) -> bool:
        """True if ``pubkey`` (hex or npub) may mutate storage."""

    async def aclose(self) -> None:
        pass


class AllowListPolicy(AccessPolicy):
    def __init__(self, allow_list: AllowList):
        self.allow_list = allow_list

    async def is_allowed(self, pubkey: str) -> bool:
        try:
            hex_key = normalize_pubkey(pubkey)
        except InvalidPubkey:
            return False
        try:
            allowed = await self.allow_list.contains(hex_key)
        except SQLAlchemyError as e:
            logger.error("Database query failed for pubkey %s: %s", hex_key, e)
            return False
        logger.debug("Pubkey %s is %swhitelisted", hex_key, "" if allowed else "not ")
        return allowed


class RemoteAcceptPolicy(AccessPolicy):
    """Ask a remote service whether it accepts a pubkey.

    The service is queried with ``GET <accept_url>?pubkey=<npub>`` and must
    answer 200 with a JSON object whose ``accept`` field is ``true``.
    Anything else, including transport errors, is a deny. No retries.
    """

    def __init__(self, accept_url: str, client: Optional[httpx.AsyncClient] = None):
        self.accept_url = accept_url
        self._client = client or httpx.AsyncClient()

    async def is_allowed(self, pubkey: str) -> bool:
        try:
            npub = hex_to_npub(normalize_pubkey(pubkey))
        except InvalidPubkey:
            return False
        try:
            resp = await self._client.get(self.accept_url, params={"pubkey": npub})
        except httpx.HTTPError as e:
            logger.error("Relay accept check error for %s: %s", npub, e)
            return False
        if resp.status_code != 200:
            logger.warning("Relay accept check failed (%s) for %s", resp.status_code, npub)
            return False
        try:
            body = resp.json()
        except ValueError:
            logger.warning("Relay accept check returned invalid JSON for %s", npub)
            return False
        accept = isinstance(body, dict) and body.get("accept") is True
        if not accept:
            logger.info("Relay rejected pubkey: %s", npub)
        return accept

    async def aclose(self) -> None:
        await self._client.aclose()


def build_access_policy(
    settings: Settings, allow_list: AllowList, client: Optional[httpx.AsyncClient] = None
) -> AccessPolicy:
    if settings.auth_mode == AuthMode.ALLOWLIST:
        return AllowListPolicy(allow_list)
    return RemoteAcceptPolicy(settings.accept_url, client=client)
