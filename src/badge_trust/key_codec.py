"""
Ed25519 key encoding.

Converts key material between PEM (SPKI public / PKCS8 private) and the
multibase form used in issuer documents: ``'z' + base64url(DER SPKI)``.
Everything downstream works on ``cryptography`` key objects only.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import Enum

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from badge_trust.errors import KeyFormatError

MULTIBASE_PREFIX = "z"
RAW_KEY_LENGTH = 32


class KeyFormat(Enum):
    """Supported key encodings."""

    PEM = "pem"
    MULTIBASE = "multibase"


@dataclass
class KeyPair:
    """A freshly generated Ed25519 key pair in every published encoding."""

    private_key_pem: str
    public_key_pem: str
    public_key_multibase: str


def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """Decode base64url, with or without padding.

    Raises:
        ValueError: If the input is not valid base64url.
    """
    # Add padding if needed
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    try:
        return base64.urlsafe_b64decode(data.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url data: {e}") from e


def _as_bytes(data: str | bytes) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def _require_ed25519_public(key: object) -> Ed25519PublicKey:
    if not isinstance(key, Ed25519PublicKey):
        raise KeyFormatError(
            f"Expected an Ed25519 public key, got {type(key).__name__}"
        )
    return key


def decode_public_key(data: str | bytes, fmt: KeyFormat = KeyFormat.PEM) -> Ed25519PublicKey:
    """Decode a public key from PEM or multibase.

    Args:
        data: The encoded key.
        fmt: Encoding of ``data``.

    Returns:
        The Ed25519 public key.

    Raises:
        KeyFormatError: If the data is malformed or not an Ed25519 key.
    """
    if fmt is KeyFormat.PEM:
        try:
            key = serialization.load_pem_public_key(_as_bytes(data))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyFormatError(f"Invalid PEM public key: {e}") from e
        return _require_ed25519_public(key)

    text = data.decode("ascii") if isinstance(data, bytes) else data
    text = text.strip()
    if not text.startswith(MULTIBASE_PREFIX):
        raise KeyFormatError(
            f"Unsupported multibase prefix {text[:1]!r}, expected {MULTIBASE_PREFIX!r}"
        )
    try:
        raw = b64url_decode(text[1:])
    except ValueError as e:
        raise KeyFormatError(f"Invalid multibase key: {e}") from e

    # Bare 32-byte keys are accepted alongside DER SPKI
    if len(raw) == RAW_KEY_LENGTH:
        return Ed25519PublicKey.from_public_bytes(raw)
    try:
        key = serialization.load_der_public_key(raw)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError(f"Invalid DER public key in multibase value: {e}") from e
    return _require_ed25519_public(key)


def encode_public_key(key: Ed25519PublicKey, fmt: KeyFormat = KeyFormat.PEM) -> str:
    """Encode a public key as SPKI PEM or multibase."""
    if fmt is KeyFormat.PEM:
        return key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")
    der = key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return MULTIBASE_PREFIX + b64url_encode(der)


def decode_private_key(pem: str | bytes) -> Ed25519PrivateKey:
    """Decode an unencrypted PKCS8 PEM private key.

    Raises:
        KeyFormatError: If the data is malformed, encrypted or not Ed25519.
    """
    try:
        key = serialization.load_pem_private_key(_as_bytes(pem), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError(f"Invalid PEM private key: {e}") from e
    if not isinstance(key, Ed25519PrivateKey):
        raise KeyFormatError(
            f"Expected an Ed25519 private key, got {type(key).__name__}"
        )
    return key


def encode_private_key(key: Ed25519PrivateKey) -> str:
    """Encode a private key as unencrypted PKCS8 PEM."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def multibase_to_pem(value: str) -> str:
    """Convert a multibase public key to SPKI PEM."""
    return encode_public_key(decode_public_key(value, KeyFormat.MULTIBASE), KeyFormat.PEM)


def pem_to_multibase(pem: str) -> str:
    """Convert an SPKI PEM public key to multibase."""
    return encode_public_key(decode_public_key(pem, KeyFormat.PEM), KeyFormat.MULTIBASE)


def generate_key_pair() -> KeyPair:
    """Generate a new Ed25519 key pair for an issuer."""
    private_key = Ed25519PrivateKey.generate()
    public_key = private_key.public_key()
    return KeyPair(
        private_key_pem=encode_private_key(private_key),
        public_key_pem=encode_public_key(public_key, KeyFormat.PEM),
        public_key_multibase=encode_public_key(public_key, KeyFormat.MULTIBASE),
    )
