"""BUD-02: Upload, list, and delete blobs against a running blossomd

Start the server first, e.g. ``AUTH_MODE=allowlist blossomd serve`` after
``blossomd whitelist add <your npub>``.
"""
import hashlib

import httpx

from blossomd.auth import build_auth_header, load_private_key

# Private key required for write operations (upload, delete)
NSEC = 'nsec....'
SERVER = 'http://localhost:3334'

private_key = load_private_key(NSEC)
pubkey = private_key.public_key.bech32()

data = b'hello from blossomd'
sha256 = hashlib.sha256(data).hexdigest()

with httpx.Client(base_url=SERVER) as http:
    print("=== HEAD /upload (upload requirements) ===")
    resp = http.head('/upload')
    print(f"Max upload size: {resp.headers.get('X-Max-Upload-Size')} bytes")

    print("\n=== PUT /upload (upload blob) ===")
    headers = {
        'Authorization': build_auth_header(private_key, x_hashes=[sha256], media_type='text/plain'),
        'Content-Type': 'text/plain',
    }
    resp = http.put('/upload', content=data, headers=headers)
    if resp.status_code != 200:
        raise SystemExit(f"Upload failed ({resp.status_code}): {resp.headers.get('X-Reason')}")
    descriptor = resp.json()
    print(f"SHA256: {descriptor['sha256']}")
    print(f"URL: {descriptor['url']}")

    print("\n=== GET /<sha256> (retrieve blob) ===")
    resp = http.get(f'/{sha256}')
    print(f"Retrieved {len(resp.content)} bytes, Content-Type: {resp.headers['content-type']}")

    # npub and hex both work here
    print("\n=== GET /list/<pubkey> (list user's blobs) ===")
    blobs = http.get(f'/list/{pubkey}').json()
    print(f"User {pubkey[:20]}... has {len(blobs)} blobs on server")

    # The file only goes away once no other owner references it
    print("\n=== DELETE /<sha256> (delete blob) ===")
    resp = http.delete(f'/{sha256}', headers={'Authorization': build_auth_header(private_key, x_hashes=[sha256])})
    print(f"Delete result: {resp.status_code} {resp.text}")
