"""Exceptions raised by the Blossom server components.

Every error carries the HTTP status it maps to and a short reason that is
sent back to the client in the ``X-Reason`` header.
"""

from typing import Optional


class BlossomError(Exception):
    """Base class for all Blossom server errors."""

    status_code = 500
    default_reason = "Internal server error"

    def __init__(self, reason: Optional[str] = None, status_code: Optional[int] = None):
        self.reason = reason or self.default_reason
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.reason)


class BadRequest(BlossomError):
    status_code = 400
    default_reason = "Bad request"


class InvalidPubkey(BadRequest):
    """Pubkey is neither 64-char hex nor a valid npub."""

    default_reason = "Invalid pubkey format"


class InvalidPrivateKey(BadRequest):
    default_reason = "Invalid private key: expected an nsec or 64 hex characters"


# Name used by the pubkey codec's callers when talking about formats.
InvalidFormat = InvalidPubkey


class TooLarge(BadRequest):
    default_reason = "blocked: upload exceeds the maximum size"


class HashMismatch(BadRequest):
    """Received bytes do not hash to the digest authorized by the token."""

    def __init__(self, calculated: str, expected: str):
        self.calculated = calculated
        self.expected = expected
        super().__init__(f"Hash mismatch: calculated {calculated}, expected {expected}")


class Forbidden(BlossomError):
    status_code = 403
    default_reason = "Forbidden"


class MissingAuth(Forbidden):
    default_reason = "Missing Nostr authorization"


class MalformedAuth(Forbidden):
    default_reason = "Malformed Nostr authorization"


class WrongKind(Forbidden):
    default_reason = "Invalid authorization event kind"


class WrongVerb(Forbidden):
    default_reason = "Authorization event is missing the upload verb"


class Expired(Forbidden):
    default_reason = "Authorization event has expired"


class BadSignature(Forbidden):
    default_reason = "Invalid Nostr event signature"


class NotAuthorized(Forbidden):
    default_reason = "blocked: pubkey is not authorized"


class NotFound(BlossomError):
    status_code = 404
    default_reason = "Not found"


class BlobNotFound(NotFound):
    default_reason = "Blob not found"
