"""Database models for blob ownership and the upload allow-list."""

from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BlobOwnership(Base):
    """One principal's claim on a stored blob.

    The same sha256 may appear under many pubkeys; the file on disk lives as
    long as at least one row for its digest exists.
    """

    __tablename__ = "blobs"

    sha256: Mapped[str] = mapped_column(String(64), primary_key=True)
    pubkey: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    size: Mapped[int] = mapped_column(BigInteger)
    type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uploaded: Mapped[int] = mapped_column(BigInteger)

    def to_descriptor(self, server_url: str) -> Dict[str, Any]:
        """Blob descriptor as returned by /upload and /list."""
        descriptor: Dict[str, Any] = {"sha256": self.sha256, "size": self.size}
        if self.type is not None:
            descriptor["type"] = self.type
        descriptor["uploaded"] = self.uploaded
        descriptor["url"] = f"{server_url.rstrip('/')}/{self.sha256}"
        return descriptor


class WhitelistEntry(Base):
    __tablename__ = "whitelist"

    pubkey: Mapped[str] = mapped_column(String(64), primary_key=True)
