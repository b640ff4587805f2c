"""Nostr authorization events (kind 24242) for Blossom uploads and deletes.

Clients send ``Authorization: Nostr <base64(JSON event)>``. The server parses
the event strictly, checks its kind, verb tag and expiration, then verifies
the Schnorr signature over the event ``id`` with the claimed pubkey.

The ``id`` is taken as given and is not recomputed from the other fields;
payload integrity comes from matching the uploaded bytes against the ``x``
tag, not from the id.
"""

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pynostr.event import Event
from pynostr.key import PrivateKey, PublicKey

from .errors import (
    BadSignature,
    Expired,
    InvalidPrivateKey,
    MalformedAuth,
    MissingAuth,
    WrongKind,
    WrongVerb,
)
from .pubkey import decode_key

logger = logging.getLogger(__name__)

AUTH_KIND = 24242
AUTH_SCHEME = "Nostr "
UPLOAD_VERB = "upload"
DEFAULT_EXPIRATION_SECONDS = 3600
NSEC_HRP = "nsec"

_HEX_32 = re.compile(r"^[0-9a-fA-F]{64}$")
_HEX_64 = re.compile(r"^[0-9a-fA-F]{128}$")


@dataclass(frozen=True)
class AuthEvent:
    """A decoded authorization event. Never persisted."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tuple[Tuple[str, ...], ...]
    content: str
    sig: str

    @classmethod
    def from_dict(cls, data: Any) -> "AuthEvent":
        if not isinstance(data, dict):
            raise MalformedAuth("Authorization event must be a JSON object")
        for name in ("id", "pubkey", "content", "sig"):
            if not isinstance(data.get(name), str):
                raise MalformedAuth(f"Authorization event field {name!r} must be a string")
        for name in ("created_at", "kind"):
            value = data.get(name)
            # bool is an int subclass but never a valid timestamp or kind
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedAuth(f"Authorization event field {name!r} must be an integer")
        raw_tags = data.get("tags")
        if not isinstance(raw_tags, list):
            raise MalformedAuth("Authorization event field 'tags' must be a list")
        tags = []
        for tag in raw_tags:
            if not isinstance(tag, list) or not all(isinstance(item, str) for item in tag):
                raise MalformedAuth("Authorization event tags must be lists of strings")
            tags.append(tuple(tag))
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=tuple(tags),
            content=data["content"],
            sig=data["sig"],
        )

    def tag_value(self, name: str) -> Optional[str]:
        """Value of the first tag called ``name``, or None."""
        for tag in self.tags:
            if len(tag) > 1 and tag[0] == name:
                return tag[1]
        return None

    def has_tag(self, name: str, value: str) -> bool:
        return any(len(tag) > 1 and tag[0] == name and tag[1] == value for tag in self.tags)

    @property
    def expiration(self) -> Optional[int]:
        raw = self.tag_value("expiration")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    @property
    def sha256(self) -> Optional[str]:
        return self.tag_value("x")

    @property
    def media_type(self) -> Optional[str]:
        return self.tag_value("m")


def parse_auth_header(header: Optional[str]) -> AuthEvent:
    """Decode the ``Authorization`` header into an AuthEvent.

    :param header: raw header value, may be None.
    :raises MissingAuth: header absent or not using the ``Nostr`` scheme.
    :raises MalformedAuth: payload is not base64 encoded JSON of the right shape.
    """
    if not header or not header.startswith(AUTH_SCHEME):
        raise MissingAuth()
    encoded = header[len(AUTH_SCHEME):].strip()
    try:
        payload = json.loads(base64.b64decode(encoded, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.info("Failed to decode Nostr authorization: %s", e)
        raise MalformedAuth() from e
    return AuthEvent.from_dict(payload)


def verify_signature(pubkey: str, event_id: str, sig: str) -> bool:
    """BIP-340 verification of ``sig`` over ``event_id`` by ``pubkey``.

    Values that are not hex of the right length never reach secp256k1.
    """
    if not (_HEX_32.match(pubkey) and _HEX_32.match(event_id) and _HEX_64.match(sig)):
        return False
    public_key = PublicKey.from_hex(pubkey)
    try:
        return bool(public_key.verify(bytes.fromhex(sig), bytes.fromhex(event_id)))
    except (AttributeError, TypeError):
        raise
    except Exception as e:
        # secp256k1 rejects x coordinates that are not on the curve with a bare Exception
        logger.info("Signature verification error for %s: %s", event_id, e)
        return False


def verify_auth_event(event: AuthEvent, now: Optional[int] = None) -> AuthEvent:
    """Check kind, verb, expiration and signature, in that order.

    :param event: parsed authorization event.
    :param now: current unix time, defaults to ``time.time()``.
    :return: the same event when every check passes.
    """
    if event.kind != AUTH_KIND:
        raise WrongKind(f"Invalid authorization event kind {event.kind}")
    if not event.has_tag("t", UPLOAD_VERB):
        raise WrongVerb()
    expiration = event.expiration
    if now is None:
        now = int(time.time())
    if expiration is not None and now > expiration:
        logger.info("Event %s expired at %s", event.id, expiration)
        raise Expired()
    if not event.sig:
        logger.warning("Event %s has no signature", event.id)
        raise BadSignature()
    if not verify_signature(event.pubkey, event.id, event.sig):
        logger.warning("Event %s has an invalid signature", event.id)
        raise BadSignature()
    return event


def authorize_header(header: Optional[str], now: Optional[int] = None) -> AuthEvent:
    """Parse and verify an ``Authorization`` header in one step."""
    return verify_auth_event(parse_auth_header(header), now=now)


def load_private_key(value: str) -> PrivateKey:
    """Signing key for ``blossomd sign`` and the examples.

    :param value: ``nsec1...`` or 64 hex characters.
    :raises InvalidPrivateKey: anything else.
    """
    value = value.strip()
    if value.startswith(NSEC_HRP + "1"):
        try:
            return PrivateKey(decode_key(value, NSEC_HRP))
        except ValueError as e:
            raise InvalidPrivateKey(f"Invalid nsec: {e}") from e
    if _HEX_32.match(value):
        return PrivateKey(bytes.fromhex(value))
    raise InvalidPrivateKey()


def build_auth_event(
    private_key: PrivateKey,
    verb: str = UPLOAD_VERB,
    x_hashes: Optional[List[str]] = None,
    media_type: Optional[str] = None,
    expiration_seconds: Optional[int] = DEFAULT_EXPIRATION_SECONDS,
    content: Optional[str] = None,
    kind: int = AUTH_KIND,
) -> Dict[str, Any]:
    """Build and sign an authorization event with pynostr.

    :param private_key: signing key.
    :param verb: value of the ``t`` tag.
    :param x_hashes: blob digests to authorize.
    :param media_type: optional ``m`` tag.
    :param expiration_seconds: lifetime from now; None omits the tag.
    :param content: human readable description.
    :param kind: event kind, only overridden to produce invalid events.
    :return: event as a JSON-ready dict.
    """
    tags: List[List[str]] = [["t", verb]]
    if expiration_seconds is not None:
        tags.append(["expiration", str(int(time.time()) + expiration_seconds)])
    for h in x_hashes or []:
        tags.append(["x", h])
    if media_type:
        tags.append(["m", media_type])
    ev = Event(content=content or f"{verb.capitalize()} Blob", kind=kind, tags=tags)
    ev.sign(private_key.hex())
    return ev.to_dict()


def encode_auth_header(event: Dict[str, Any]) -> str:
    return AUTH_SCHEME + base64.b64encode(json.dumps(event).encode()).decode()


def build_auth_header(private_key: PrivateKey, **kwargs: Any) -> str:
    """Signed ``Authorization`` header value, see :func:`build_auth_event`."""
    return encode_auth_header(build_auth_event(private_key, **kwargs))
