"""Message encryption for Web Push (RFC 8291, ``aes128gcm`` coding).

Single-record encoding: the whole payload plus the 0x02 delimiter fits in
one record of the fixed 4096-byte record size.
"""

import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from src.push.vapid import b64url_decode, public_key_bytes

RECORD_SIZE = 4096
# Keeps the whole encrypted body within 4096 bytes (86-byte header, 1-byte
# delimiter, 16-byte tag).
MAX_PAYLOAD_BYTES = 3993


def _hkdf(salt: bytes, ikm: bytes, info: bytes, length: int) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


def encrypt_payload(
    payload: bytes,
    p256dh_b64: str,
    auth_b64: str,
    *,
    salt: bytes | None = None,
    server_key: ec.EllipticCurvePrivateKey | None = None,
) -> bytes:
    """Encrypt a push payload for one subscriber.

    `salt` and `server_key` exist for deterministic tests; production callers
    leave them unset so each message gets fresh values.
    """
    if len(payload) > MAX_PAYLOAD_BYTES:
        msg = f"Push payload too large: {len(payload)} > {MAX_PAYLOAD_BYTES} bytes"
        raise ValueError(msg)

    ua_public = b64url_decode(p256dh_b64)
    auth_secret = b64url_decode(auth_b64)
    ua_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), ua_public)

    as_key = server_key or ec.generate_private_key(ec.SECP256R1())
    as_public = public_key_bytes(as_key)
    shared = as_key.exchange(ec.ECDH(), ua_key)

    ikm = _hkdf(auth_secret, shared, b"WebPush: info\x00" + ua_public + as_public, 32)
    salt = salt or os.urandom(16)
    cek = _hkdf(salt, ikm, b"Content-Encoding: aes128gcm\x00", 16)
    nonce = _hkdf(salt, ikm, b"Content-Encoding: nonce\x00", 12)

    ciphertext = AESGCM(cek).encrypt(nonce, payload + b"\x02", None)
    header = salt + RECORD_SIZE.to_bytes(4, "big") + bytes([len(as_public)]) + as_public
    return header + ciphertext
