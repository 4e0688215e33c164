"""VAPID (RFC 8292) application-server identification for Web Push.

The authorization token is an ES256 JWT. ECDSA signers emit DER, while JWS
wants the fixed 64-byte ``r || s`` form, so signatures are re-encoded here.
"""

import base64
import json
import logging
import os
import time
from urllib.parse import urlsplit

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from src.core.config import PushConfig

logger = logging.getLogger(__name__)

JWT_HEADER = {"typ": "JWT", "alg": "ES256"}
COORDINATE_BYTES = 32


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    value = value.strip()
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def der_to_raw(der_signature: bytes) -> bytes:
    """Convert a DER ECDSA signature to 64 bytes, each half left-padded."""
    r, s = decode_dss_signature(der_signature)
    return r.to_bytes(COORDINATE_BYTES, "big") + s.to_bytes(COORDINATE_BYTES, "big")


def endpoint_origin(endpoint: str) -> str:
    parts = urlsplit(endpoint)
    return f"{parts.scheme}://{parts.netloc}"


class VapidCredentials:
    """A P-256 key pair plus the contact subject used in token claims."""

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        public_key_b64: str,
        subject: str,
    ) -> None:
        self.private_key = private_key
        self.public_key_b64 = public_key_b64
        self.subject = subject

    @classmethod
    def from_raw(
        cls, private_key_b64: str, subject: str, public_key_b64: str = "",
    ) -> "VapidCredentials":
        """Load a raw 32-byte base64url private scalar.

        The public key is derived when not supplied.
        """
        raw = b64url_decode(private_key_b64)
        if len(raw) != COORDINATE_BYTES:
            msg = f"VAPID private key must be {COORDINATE_BYTES} bytes, got {len(raw)}"
            raise ValueError(msg)
        private_key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
        if not public_key_b64:
            public_key_b64 = b64url_encode(public_key_bytes(private_key))
        return cls(private_key, public_key_b64, subject)

    @classmethod
    def from_env(cls, config: PushConfig) -> "VapidCredentials | None":
        """Read keys from the configured environment variables.

        Returns None when the private key is not set.
        """
        private = os.environ.get(config.private_key_env, "")
        if not private:
            logger.warning("%s not set, push notifications disabled", config.private_key_env)
            return None
        public = os.environ.get(config.public_key_env, "")
        return cls.from_raw(private, config.subject, public)


def public_key_bytes(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Uncompressed X9.62 point (65 bytes) of the key's public half."""
    return private_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def generate_key_pair() -> tuple[str, str]:
    """Return a fresh (private, public) pair in base64url form."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    scalar = private_key.private_numbers().private_value.to_bytes(COORDINATE_BYTES, "big")
    return b64url_encode(scalar), b64url_encode(public_key_bytes(private_key))


def create_vapid_token(
    credentials: VapidCredentials,
    audience: str,
    ttl_hours: int = 12,
    now: float | None = None,
) -> str:
    """Sign a compact ES256 JWT for one push service origin."""
    issued = int(now if now is not None else time.time())
    claims = {
        "aud": audience,
        "exp": issued + ttl_hours * 3600,
        "sub": credentials.subject,
    }
    signing_input = ".".join(
        b64url_encode(json.dumps(part, separators=(",", ":")).encode())
        for part in (JWT_HEADER, claims)
    )
    der = credentials.private_key.sign(signing_input.encode("ascii"), ec.ECDSA(hashes.SHA256()))
    return f"{signing_input}.{b64url_encode(der_to_raw(der))}"


def authorization_header(credentials: VapidCredentials, endpoint: str, ttl_hours: int = 12) -> str:
    token = create_vapid_token(credentials, endpoint_origin(endpoint), ttl_hours)
    return f"vapid t={token}, k={credentials.public_key_b64}"
