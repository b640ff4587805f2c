"""Persisted set of pubkeys allowed to upload in allow-list mode."""

import logging
from typing import Iterable, List

from sqlalchemy import delete, select

from .db import Database
from .errors import InvalidPubkey
from .models import WhitelistEntry
from .pubkey import normalize_pubkey

logger = logging.getLogger(__name__)


class AllowList:
    def __init__(self, database: Database):
        self.database = database

    async def add(self, pubkey: str) -> str:
        """Add a pubkey (hex or npub). Returns the stored hex form."""
        hex_key = normalize_pubkey(pubkey)
        async with self.database.session_factory() as session:
            async with session.begin():
                await session.execute(
                    self.database.insert(WhitelistEntry).values(pubkey=hex_key).on_conflict_do_nothing()
                )
        logger.info("Added pubkey %s to whitelist", hex_key)
        return hex_key

    async def remove(self, pubkey: str) -> bool:
        hex_key = normalize_pubkey(pubkey)
        async with self.database.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(WhitelistEntry).where(WhitelistEntry.pubkey == hex_key)
                )
        if result.rowcount:
            logger.info("Removed pubkey %s from whitelist", hex_key)
        return bool(result.rowcount)

    async def list(self) -> List[str]:
        async with self.database.session_factory() as session:
            result = await session.execute(select(WhitelistEntry.pubkey).order_by(WhitelistEntry.pubkey))
            return list(result.scalars().all())

    async def contains(self, hex_key: str) -> bool:
        """Membership test on an already normalized key."""
        async with self.database.session_factory() as session:
            found = await session.scalar(
                select(WhitelistEntry.pubkey).where(WhitelistEntry.pubkey == hex_key)
            )
        return found is not None

    async def seed(self, pubkeys: Iterable[str]) -> None:
        """Add configured pubkeys at startup, skipping ones that do not parse."""
        for pubkey in pubkeys:
            try:
                await self.add(pubkey)
            except InvalidPubkey as e:
                logger.warning("Ignoring configured pubkey %r: %s", pubkey, e)
