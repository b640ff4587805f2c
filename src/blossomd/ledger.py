"""Ownership records for stored blobs.

Each ``(sha256, pubkey)`` row is an independent claim on a blob. Files are
reference counted with a live COUNT over these rows rather than a stored
counter, so the count cannot drift after a crash.
"""

import asyncio
import logging
import time
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from .db import Database
from .errors import BlossomError
from .models import BlobOwnership
from .store import ContentStore

logger = logging.getLogger(__name__)


class OwnershipLedger:
    def __init__(self, database: Database, store: ContentStore):
        self.database = database
        self.store = store

    async def record_upload(
        self, sha256: str, owner: str, size: int, media_type: Optional[str]
    ) -> BlobOwnership:
        """Insert or replace the ownership row for ``owner``.

        Callers must have checked the received bytes against the digest the
        owner authorized before recording anything.
        """
        row = BlobOwnership(
            sha256=sha256, pubkey=owner, size=size, type=media_type, uploaded=int(time.time())
        )
        stmt = self.database.insert(BlobOwnership).values(
            sha256=row.sha256, pubkey=row.pubkey, size=row.size, type=row.type, uploaded=row.uploaded
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BlobOwnership.sha256, BlobOwnership.pubkey],
            set_={"size": stmt.excluded.size, "type": stmt.excluded.type, "uploaded": stmt.excluded.uploaded},
        )
        try:
            async with self.database.session_factory() as session:
                async with session.begin():
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to store blob metadata for %s: %s", sha256, e)
            raise BlossomError("Failed to store blob metadata") from e
        logger.info("Stored blob metadata: %s for %s", sha256, owner)
        return row

    async def list_by_owner(self, owner: str) -> List[BlobOwnership]:
        """All blobs owned by ``owner``, most recent upload first."""
        stmt = (
            select(BlobOwnership)
            .where(BlobOwnership.pubkey == owner)
            .order_by(BlobOwnership.uploaded.desc(), BlobOwnership.sha256)
        )
        try:
            async with self.database.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("List blobs failed for %s: %s", owner, e)
            raise BlossomError("Failed to list blobs") from e

    async def media_type(self, sha256: str) -> Optional[str]:
        stmt = (
            select(BlobOwnership.type)
            .where(BlobOwnership.sha256 == sha256, BlobOwnership.type.is_not(None))
            .limit(1)
        )
        try:
            async with self.database.session_factory() as session:
                return await session.scalar(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to query blob type for %s: %s", sha256, e)
            return None

    async def count_owners(self, sha256: str) -> int:
        stmt = select(func.count()).select_from(BlobOwnership).where(BlobOwnership.sha256 == sha256)
        async with self.database.session_factory() as session:
            return await session.scalar(stmt) or 0

    async def remove_ownership(self, sha256: str, owner: str) -> bool:
        """Drop ``owner``'s claim on a blob, deleting the file with the last claim.

        :return: False if ``owner`` did not own ``sha256``.
        """
        try:
            async with self.database.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(BlobOwnership).where(
                            BlobOwnership.sha256 == sha256, BlobOwnership.pubkey == owner
                        )
                    )
                    if result.rowcount == 0:
                        return False
                    remaining = await session.scalar(
                        select(func.count())
                        .select_from(BlobOwnership)
                        .where(BlobOwnership.sha256 == sha256)
                    )
                    if not remaining:
                        await asyncio.get_running_loop().run_in_executor(None, self.store.delete, sha256)
                    else:
                        logger.info("Kept blob file %s (%d other owners)", sha256, remaining)
        except SQLAlchemyError as e:
            logger.error("Delete failed for %s by %s: %s", sha256, owner, e)
            raise BlossomError("Failed to delete blob") from e
        logger.info("Deleted blob metadata: %s by %s", sha256, owner)
        return True
