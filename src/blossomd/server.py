"""Blob operations behind the HTTP layer.

BUD-01: GET /<sha256>, HEAD /<sha256>
BUD-02: PUT /upload, GET /list/<pubkey>, DELETE /<sha256>
BUD-06: HEAD /upload
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterable, Dict, List, Optional

import httpx

from .access import AccessPolicy, build_access_policy
from .allowlist import AllowList
from .auth import authorize_header
from .config import AuthMode, Settings
from .db import Database
from .errors import BlobNotFound, BlossomError, HashMismatch, NotAuthorized, NotFound
from .ledger import OwnershipLedger
from .pubkey import normalize_pubkey
from .store import ContentStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

_BLOB_NAME = re.compile(r"^([0-9a-fA-F]{64})(?:\.[^/]*)?$")


def parse_blob_name(name: str) -> str:
    """``<sha256>`` or ``<sha256>.<ext>`` to a lowercase digest.

    Malformed names are plain misses, not client errors.
    """
    match = _BLOB_NAME.match(name)
    if not match:
        raise BlobNotFound(f"Invalid hash format: {name}")
    return match.group(1).lower()


@dataclass
class BlobInfo:
    path: Path
    size: int
    media_type: str


class BlossomServer:
    """Owns the database, store and access policy for one running server."""

    def __init__(
        self,
        settings: Settings,
        access: Optional[AccessPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.store = ContentStore(settings.blobs_dir)
        self.database = Database(settings.resolved_database_url, echo=settings.database_echo)
        self.ledger = OwnershipLedger(self.database, self.store)
        self.allow_list = AllowList(self.database)
        self.access = access or build_access_policy(settings, self.allow_list, client=http_client)

    async def start(self) -> None:
        await self.database.init()
        if self.settings.auth_mode == AuthMode.ALLOWLIST:
            await self.allow_list.seed(self.settings.allowed_pubkey_list)

    async def close(self) -> None:
        await self.access.aclose()
        await self.database.dispose()

    # ----------------------- Read endpoints -----------------------
    async def blob_info(self, name: str) -> BlobInfo:
        sha256 = parse_blob_name(name)
        path = self.store.path_for(sha256)
        size = self.store.stat(sha256)
        media_type = await self.ledger.media_type(sha256) or DEFAULT_MIME_TYPE
        return BlobInfo(path=path, size=size, media_type=media_type)

    async def list_blobs(self, pubkey: str) -> List[Dict[str, Any]]:
        owner = normalize_pubkey(pubkey)
        rows = await self.ledger.list_by_owner(owner)
        return [row.to_descriptor(self.settings.base_url) for row in rows]

    def upload_requirements(self) -> Dict[str, str]:
        return {
            "Accept": DEFAULT_MIME_TYPE,
            "X-Max-Upload-Size": str(self.settings.max_upload_size),
        }

    # ----------------------- Mutating endpoints -----------------------
    async def upload(
        self,
        authorization: Optional[str],
        body: AsyncIterable[bytes],
        content_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Verify, store and record an upload; returns the blob descriptor."""
        event = authorize_header(authorization)
        if not await self.access.is_allowed(event.pubkey):
            raise NotAuthorized()
        owner = normalize_pubkey(event.pubkey)

        pending = await self.store.receive(body, self.settings.max_upload_size)
        expected = (event.sha256 or "").lower()
        if pending.sha256 != expected:
            self.store.discard(pending)
            raise HashMismatch(pending.sha256, event.sha256 or "")

        # Record the claim before the file lands; a delete by the last other
        # owner then either sees this row or finishes before the commit below.
        media_type = event.media_type or _declared_type(content_type)
        try:
            row = await self.ledger.record_upload(pending.sha256, owner, pending.size, media_type)
        except Exception:
            self.store.discard(pending)
            raise
        try:
            self.store.commit(pending)
        except OSError:
            self.store.discard(pending)
            await self._drop_claim(pending.sha256, owner)
            raise
        logger.info("Upload successful: %s uploaded %s (%d bytes)", owner, pending.sha256, pending.size)
        return row.to_descriptor(self.settings.base_url)

    async def _drop_claim(self, sha256: str, owner: str) -> None:
        try:
            await self.ledger.remove_ownership(sha256, owner)
        except BlossomError as e:
            logger.error("Failed to drop ownership of %s by %s after a failed commit: %s", sha256, owner, e)

    async def delete(self, authorization: Optional[str], name: str) -> None:
        event = authorize_header(authorization)
        if not await self.access.is_allowed(event.pubkey):
            raise NotAuthorized()
        owner = normalize_pubkey(event.pubkey)
        try:
            sha256 = parse_blob_name(name)
        except BlobNotFound:
            sha256 = None
        if sha256 is None or not await self.ledger.remove_ownership(sha256, owner):
            raise NotFound("Blob not found or you do not own it")


def _declared_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    if not media_type or media_type == DEFAULT_MIME_TYPE:
        return None
    return media_type
