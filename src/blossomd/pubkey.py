"""Conversion between the two textual forms of a Nostr public key.

Keys arrive either as 64 hex characters or as a NIP-19 ``npub1...`` bech32
string. Internally everything is stored and compared as lowercase hex.
"""

import re

from pynostr import bech32

from .errors import BlossomError, InvalidPubkey

NPUB_HRP = "npub"
PUBKEY_BYTES = 32

_HEX_PUBKEY = re.compile(r"^[0-9a-fA-F]{64}$")


def is_hex_pubkey(value: str) -> bool:
    return bool(value) and _HEX_PUBKEY.match(value) is not None


def decode_key(value: str, hrp: str) -> bytes:
    """Strictly decode a 32-byte NIP-19 key such as an npub or nsec.

    :param value: bech32 string.
    :param hrp: required human readable prefix.
    :raises ValueError: bad prefix, bad checksum, bad padding or wrong length.
    """
    found_hrp, data, encoding = bech32.bech32_decode(value)
    if found_hrp is None or data is None:
        raise ValueError("bad bech32 checksum or characters")
    if found_hrp != hrp:
        raise ValueError(f"unexpected prefix {found_hrp!r}")
    if encoding != bech32.Encoding.BECH32:
        raise ValueError("bech32m checksum is not accepted")
    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("invalid padding")
    if len(decoded) != PUBKEY_BYTES:
        raise ValueError("wrong key length")
    return bytes(decoded)


def npub_to_hex(npub: str) -> str:
    """Decode a NIP-19 npub into a lowercase hex public key.

    :param npub: bech32 string with the ``npub`` prefix.
    :return: 64-char hex public key.
    :raises InvalidPubkey: see :func:`decode_key`.
    """
    try:
        return decode_key(npub, NPUB_HRP).hex()
    except ValueError as e:
        raise InvalidPubkey(f"Invalid npub: {e}") from e


def hex_to_npub(pubkey_hex: str) -> str:
    """Encode a hex public key as an npub.

    :param pubkey_hex: 64-char hex public key (any case).
    :return: ``npub1...`` string.
    """
    if not is_hex_pubkey(pubkey_hex):
        raise InvalidPubkey("Hex pubkey must be 64 hex characters")
    words = bech32.convertbits(bytes.fromhex(pubkey_hex), 8, 5, True)
    encoded = bech32.bech32_encode(NPUB_HRP, words, bech32.Encoding.BECH32) if words else None
    if not encoded:
        raise BlossomError(f"Failed to encode pubkey {pubkey_hex} as npub")
    return encoded


def normalize_pubkey(value: str) -> str:
    """Accept either a hex public key or an npub and return lowercase hex.

    :param value: hex or npub identifier.
    :return: 64-char lowercase hex public key.
    :raises InvalidPubkey: if ``value`` is in neither format.
    """
    if not value:
        raise InvalidPubkey()
    if is_hex_pubkey(value):
        return value.lower()
    try:
        return npub_to_hex(value)
    except InvalidPubkey as e:
        raise InvalidPubkey(f"Invalid pubkey format: {e.reason}") from e
