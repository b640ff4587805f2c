"""Blossom blob server with Nostr authorization."""

__version__ = "0.1.0"

from .auth import AUTH_KIND, AuthEvent, authorize_header, build_auth_header
from .config import AuthMode, Settings, get_settings
from .errors import BlossomError
from .pubkey import hex_to_npub, normalize_pubkey
from .server import BlossomServer

__all__ = [
    "AUTH_KIND",
    "AuthEvent",
    "AuthMode",
    "BlossomError",
    "BlossomServer",
    "Settings",
    "authorize_header",
    "build_auth_header",
    "get_settings",
    "hex_to_npub",
    "normalize_pubkey",
]
