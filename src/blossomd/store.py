"""Content-addressable blob storage on the local filesystem.

Blobs live under ``<root>/<sha256>``. Uploads are streamed into a temp file in
the same directory while hashing, then renamed into place, so a blob path
either holds the complete content for its digest or does not exist.
"""

import asyncio
import hashlib
import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, Union

from .errors import BlobNotFound, TooLarge

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".upload_"

_SHA256 = re.compile(r"^[0-9a-f]{64}$")


def is_sha256(value: str) -> bool:
    return _SHA256.match(value) is not None


@dataclass
class PendingUpload:
    """A fully received upload that has not been committed yet."""

    path: Path
    size: int
    sha256: str


class ContentStore:
    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, sha256: str) -> Path:
        if not is_sha256(sha256):
            raise BlobNotFound(f"Invalid hash format: {sha256}")
        return self.root / sha256

    def exists(self, sha256: str) -> bool:
        return is_sha256(sha256) and (self.root / sha256).is_file()

    async def receive(self, chunks: AsyncIterable[bytes], size_limit: int) -> PendingUpload:
        """Stream ``chunks`` into a temp file, hashing as we go.

        :param chunks: request body stream.
        :param size_limit: maximum accepted size in bytes.
        :raises TooLarge: once more than ``size_limit`` bytes were received.
        """
        loop = asyncio.get_running_loop()
        temp_path = self.root / f"{TEMP_PREFIX}{uuid.uuid4().hex}"
        hasher = hashlib.sha256()
        total = 0
        try:
            with open(temp_path, "wb") as f:
                async for chunk in chunks:
                    if not chunk:
                        continue
                    total += len(chunk)
                    if total > size_limit:
                        raise TooLarge(f"blocked: max upload limit is {size_limit} bytes")
                    await loop.run_in_executor(None, f.write, chunk)
                    hasher.update(chunk)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        return PendingUpload(path=temp_path, size=total, sha256=hasher.hexdigest())

    def commit(self, pending: PendingUpload) -> Path:
        """Move a received upload to its content address.

        If the blob already exists the temp file is dropped instead; equal
        digests mean equal bytes.
        """
        final_path = self.path_for(pending.sha256)
        if final_path.exists():
            pending.path.unlink(missing_ok=True)
            logger.debug("Blob %s already stored, discarded duplicate upload", pending.sha256)
        else:
            os.replace(pending.path, final_path)
            logger.info("Stored blob %s (%d bytes)", pending.sha256, pending.size)
        return final_path

    def discard(self, pending: PendingUpload) -> None:
        pending.path.unlink(missing_ok=True)

    def read(self, sha256: str) -> bytes:
        path = self.path_for(sha256)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFound()

    def stat(self, sha256: str) -> int:
        path = self.path_for(sha256)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            raise BlobNotFound()

    def delete(self, sha256: str) -> bool:
        """Remove a blob file. Returns False if it was already gone."""
        path = self.path_for(sha256)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted blob file %s", sha256)
        return True
