"""Utility: Authorization event details

Builds a kind 24242 upload event, encodes it the way blossomd expects it
in the Authorization header, and runs it through the server-side checks.
"""
from datetime import datetime

from pynostr.key import PrivateKey

from blossomd.auth import authorize_header, build_auth_event, encode_auth_header
from blossomd.errors import BlossomError

private_key = PrivateKey()
event_dict = build_auth_event(private_key, x_hashes=['a' * 64], media_type='text/plain')

print("Event details:")
print(f"  Kind: {event_dict['kind']}")
print(f"  Public key: {event_dict['pubkey']}")
print(f"  ID: {event_dict['id']}")
print(f"  Signature: {event_dict['sig'][:16]}... (truncated)")

# Tags say what the event authorizes
print("\nTags (authorization scope):")
for tag in event_dict['tags']:
    print(f"  {tag[0]}: {', '.join(tag[1:])}")

header = encode_auth_header(event_dict)
print("\n=== Auth in HTTP Header ===")
print(f"Authorization: {header[:40]}...")
print(f"Header is {len(header)} bytes")

event = authorize_header(header)
print(f"\nVerified upload event from {event.pubkey[:16]}...")
print(f"Expiration: {datetime.fromtimestamp(event.expiration)}")

# Any edit to the signature is rejected
event_dict['sig'] = '0' * 128
try:
    authorize_header(encode_auth_header(event_dict))
except BlossomError as e:
    print(f"Tampered event rejected ({e.status_code}): {e.reason}")
