"""Tests for Nostr authorization event parsing and verification."""

import base64
import json
import time

import pytest
from pynostr.key import PrivateKey

from blossomd import auth as auth_module
from blossomd.auth import (
    AUTH_KIND,
    AuthEvent,
    authorize_header,
    build_auth_event,
    encode_auth_header,
    load_private_key,
    parse_auth_header,
    verify_auth_event,
    verify_signature,
)
from blossomd.errors import (
    BadSignature,
    BlossomError,
    Expired,
    InvalidPrivateKey,
    MalformedAuth,
    MissingAuth,
    WrongKind,
    WrongVerb,
)

DIGEST = "a" * 64


@pytest.fixture
def key() -> PrivateKey:
    return PrivateKey()


def _header_for(payload) -> str:
    return "Nostr " + base64.b64encode(json.dumps(payload).encode()).decode()


def test_valid_event_is_accepted(key):
    event = authorize_header(encode_auth_header(build_auth_event(key, x_hashes=[DIGEST], media_type="text/plain")))
    assert event.kind == AUTH_KIND
    assert event.pubkey == key.public_key.hex()
    assert event.sha256 == DIGEST
    assert event.media_type == "text/plain"
    assert event.expiration > time.time()


@pytest.mark.parametrize("header", [None, "", "Bearer abc", "nostr abc", "Nostr"])
def test_missing_auth(header):
    with pytest.raises(MissingAuth):
        parse_auth_header(header)


@pytest.mark.parametrize(
    "header",
    [
        "Nostr !!!not base64!!!",
        "Nostr " + base64.b64encode(b"\xff\xfe").decode(),
        "Nostr " + base64.b64encode(b"not json").decode(),
        _header_for([1, 2, 3]),
    ],
)
def test_malformed_auth(header):
    with pytest.raises(MalformedAuth):
        parse_auth_header(header)


@pytest.mark.parametrize(
    "field,value",
    [
        ("id", None),
        ("pubkey", 12),
        ("created_at", "123"),
        ("created_at", True),
        ("kind", 24242.0),
        ("tags", "t"),
        ("tags", [["t", 1]]),
        ("tags", ["t"]),
        ("content", None),
        ("sig", []),
    ],
)
def test_wrong_field_types_are_malformed(key, field, value):
    event = build_auth_event(key, x_hashes=[DIGEST])
    event[field] = value
    with pytest.raises(MalformedAuth):
        parse_auth_header(_header_for(event))


def test_missing_field_is_malformed(key):
    event = build_auth_event(key)
    del event["sig"]
    with pytest.raises(MalformedAuth):
        AuthEvent.from_dict(event)


def test_wrong_kind(key):
    event = build_auth_event(key, kind=1)
    with pytest.raises(WrongKind):
        authorize_header(encode_auth_header(event))


@pytest.mark.parametrize("verb", ["delete", "get", "list"])
def test_only_upload_verb_is_accepted(key, verb):
    event = build_auth_event(key, verb=verb, x_hashes=[DIGEST])
    with pytest.raises(WrongVerb):
        authorize_header(encode_auth_header(event))


def test_expired_event_with_valid_signature(key):
    event = build_auth_event(key, x_hashes=[DIGEST], expiration_seconds=-60)
    with pytest.raises(Expired):
        authorize_header(encode_auth_header(event))


def test_expiration_is_inclusive(key):
    event = AuthEvent.from_dict(build_auth_event(key, expiration_seconds=0))
    verify_auth_event(event, now=event.expiration)
    with pytest.raises(Expired):
        verify_auth_event(event, now=event.expiration + 1)


def test_unparsable_expiration_means_no_expiration(key):
    event = AuthEvent.from_dict(build_auth_event(key, expiration_seconds=None))
    event = AuthEvent(
        id=event.id,
        pubkey=event.pubkey,
        created_at=event.created_at,
        kind=event.kind,
        tags=event.tags + (("expiration", "soon"),),
        content=event.content,
        sig=event.sig,
    )
    assert event.expiration is None
    assert verify_auth_event(event, now=2**40) is event


def test_empty_signature(key):
    event = build_auth_event(key)
    event["sig"] = ""
    with pytest.raises(BadSignature):
        authorize_header(encode_auth_header(event))


def test_tampered_signature(key):
    event = build_auth_event(key, x_hashes=[DIGEST])
    event["sig"] = ("0" if event["sig"][0] != "0" else "1") + event["sig"][1:]
    with pytest.raises(BadSignature):
        authorize_header(encode_auth_header(event))


def test_signature_from_other_key(key):
    event = build_auth_event(key, x_hashes=[DIGEST])
    event["pubkey"] = PrivateKey().public_key.hex()
    with pytest.raises(BadSignature):
        authorize_header(encode_auth_header(event))


def test_garbage_pubkey_is_bad_signature(key):
    event = build_auth_event(key)
    event["pubkey"] = "zz"
    with pytest.raises(BadSignature):
        authorize_header(encode_auth_header(event))


def test_id_is_not_recomputed(key):
    # Only the signature over the claimed id is checked; the payload digest
    # check during upload is what binds the event to the bytes.
    event = build_auth_event(key, x_hashes=[DIGEST])
    event["content"] = "edited after signing"
    event["tags"].append(["x", "b" * 64])
    assert authorize_header(encode_auth_header(event)).content == "edited after signing"


def test_tag_helpers():
    event = AuthEvent(
        id="",
        pubkey="",
        created_at=0,
        kind=AUTH_KIND,
        tags=(("t", "upload"), ("x", "first"), ("x", "second"), ("solo",)),
        content="",
        sig="",
    )
    assert event.tag_value("x") == "first"
    assert event.tag_value("solo") is None
    assert event.has_tag("x", "second")
    assert not event.has_tag("t", "delete")
    assert event.expiration is None


def test_load_private_key_formats(key):
    assert load_private_key(key.hex()).hex() == key.hex()
    assert load_private_key(key.bech32()).hex() == key.hex()
    with pytest.raises(BlossomError):
        load_private_key("nope")


def test_verify_signature_of_signed_event(key):
    event = build_auth_event(key, x_hashes=[DIGEST])
    assert verify_signature(event["pubkey"], event["id"], event["sig"])
    assert not verify_signature(event["pubkey"], event["id"], event["sig"][:-2])
    assert not verify_signature(event["pubkey"], "b" * 64, event["sig"])


def test_verification_errors_are_not_bad_signatures(key, monkeypatch):
    def broken(self, sig, message):
        raise AttributeError("verify")

    monkeypatch.setattr(auth_module.PublicKey, "verify", broken)
    with pytest.raises(AttributeError):
        authorize_header(encode_auth_header(build_auth_event(key, x_hashes=[DIGEST])))


@pytest.mark.parametrize("value", ["nsec1qqqqqq", "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg", "ab" * 31])
def test_load_private_key_rejects(value):
    with pytest.raises(InvalidPrivateKey):
        load_private_key(value)
