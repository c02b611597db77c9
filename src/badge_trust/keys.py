"""
Key resolution for signature verification and signing.

Public keys come from an ordered list of sources; the first one that yields
a usable Ed25519 key wins. Resolution works on documents that were already
fetched and never goes to the network itself.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from badge_trust.config import Settings
from badge_trust.domain import matches_public_domain, parse_host
from badge_trust.errors import KeyFormatError
from badge_trust.key_codec import (
    KeyFormat,
    decode_private_key,
    decode_public_key,
    encode_public_key,
)
from badge_trust.store import KeyCache

logger = logging.getLogger(__name__)


class KeySource(Enum):
    """Where a resolved key came from."""

    EMBEDDED = "embedded"
    CACHE = "cache"
    ENVIRONMENT = "environment"
    FALLBACK_FILE = "fallback_file"


@dataclass
class KeyMaterial:
    """A resolved Ed25519 public key and its provenance."""

    public_key: Ed25519PublicKey
    domain: str
    encoding: KeyFormat
    source: KeySource

    @property
    def pem(self) -> str:
        return encode_public_key(self.public_key, KeyFormat.PEM)


def embedded_key_candidates(issuer_doc: dict[str, Any]) -> list[tuple[str, KeyFormat]]:
    """List the encoded keys published in an issuer document, in priority order.

    ``publicKey`` comes first (bare PEM or multibase string, ``{publicKeyPem}``
    or ``{publicKeyMultibase}``), followed by the entries of ``publicKeys``.
    """
    entries: list[Any] = []
    if issuer_doc.get("publicKey"):
        entries.append(issuer_doc["publicKey"])
    public_keys = issuer_doc.get("publicKeys")
    if isinstance(public_keys, list):
        entries.extend(public_keys)

    candidates: list[tuple[str, KeyFormat]] = []
    for entry in entries:
        if isinstance(entry, str):
            fmt = KeyFormat.PEM if "-----BEGIN" in entry else KeyFormat.MULTIBASE
            candidates.append((entry, fmt))
        elif isinstance(entry, dict):
            if isinstance(entry.get("publicKeyPem"), str):
                candidates.append((entry["publicKeyPem"], KeyFormat.PEM))
            elif isinstance(entry.get("publicKeyMultibase"), str):
                candidates.append((entry["publicKeyMultibase"], KeyFormat.MULTIBASE))
    return candidates


def _read_first(paths: Iterable[Path]) -> tuple[str, Path] | None:
    for path in paths:
        if not path.exists():
            continue
        try:
            return path.read_text(encoding="utf-8"), path
        except OSError as e:
            logger.warning(f"Failed to read key from {path}: {e}")
    return None


class KeyResolver:
    """Resolves verification keys for issuers and the signing key for our domain."""

    def __init__(self, settings: Settings, key_cache: KeyCache) -> None:
        """Initialize the resolver.

        Args:
            settings: Public domain, default keys and environment.
            key_cache: Cache that receives every embedded key seen.
        """
        self.settings = settings
        self.key_cache = key_cache

    def resolve(self, issuer_doc: dict[str, Any], issuer_url: str) -> KeyMaterial | None:
        """Resolve the public key for an issuer.

        Args:
            issuer_doc: The issuer document (or stored trust record).
            issuer_url: URL identifying the issuer; its host keys the cache.

        Returns:
            The key, or None if no source yields one.
        """
        parts = parse_host(issuer_url)
        if parts is None:
            logger.warning(f"Cannot resolve key for invalid issuer URL: {issuer_url}")
            return None
        domain = parts.hostname

        key = (
            self.from_issuer_document(issuer_doc, domain)
            or self.from_cache(domain)
            or self.from_environment(issuer_url, domain)
            or self.from_fallback_files(domain)
        )
        if key is None:
            logger.warning(f"No public key found for domain: {domain}")
        return key

    def from_issuer_document(
        self, issuer_doc: dict[str, Any], domain: str
    ) -> KeyMaterial | None:
        """Use a key embedded in the issuer document and cache it."""
        for encoded, fmt in embedded_key_candidates(issuer_doc):
            try:
                public_key = decode_public_key(encoded, fmt)
            except KeyFormatError as e:
                logger.warning(f"Skipping unusable {fmt.value} key for {domain}: {e}")
                continue
            material = KeyMaterial(
                public_key=public_key,
                domain=domain,
                encoding=fmt,
                source=KeySource.EMBEDDED,
            )
            self.key_cache.put(domain, material.pem)
            return material
        return None

    def from_cache(self, domain: str) -> KeyMaterial | None:
        pem = self.key_cache.get(domain)
        if pem is None:
            return None
        try:
            public_key = decode_public_key(pem, KeyFormat.PEM)
        except KeyFormatError as e:
            logger.warning(f"Ignoring corrupt cached key for {domain}: {e}")
            return None
        logger.debug(f"Using cached public key for domain: {domain}")
        return KeyMaterial(public_key, domain, KeyFormat.PEM, KeySource.CACHE)

    def from_environment(self, issuer_url: str, domain: str) -> KeyMaterial | None:
        """Use DEFAULT_PUBLIC_KEY, for our own domain only."""
        pem = self.settings.default_public_key
        if not pem or not matches_public_domain(issuer_url, self.settings.public_domain):
            return None
        try:
            public_key = decode_public_key(pem, KeyFormat.PEM)
        except KeyFormatError as e:
            logger.error(f"DEFAULT_PUBLIC_KEY is not a usable Ed25519 key: {e}")
            return None
        logger.debug("Using default public key from environment")
        return KeyMaterial(public_key, domain, KeyFormat.PEM, KeySource.ENVIRONMENT)

    def from_fallback_files(self, domain: str) -> KeyMaterial | None:
        """Use a local public key file, outside production only."""
        if self.settings.is_production:
            return None
        found = _read_first(self.settings.fallback_public_key_paths)
        if found is None:
            return None
        pem, path = found
        try:
            public_key = decode_public_key(pem, KeyFormat.PEM)
        except KeyFormatError as e:
            logger.warning(f"Ignoring unusable public key file {path}: {e}")
            return None
        logger.info(f"Using public key from file: {path} (development only)")
        return KeyMaterial(public_key, domain, KeyFormat.PEM, KeySource.FALLBACK_FILE)

    def signing_key(self, domain: str) -> Ed25519PrivateKey | None:
        """Return the private key used to sign for ``domain``.

        Only our own public domain can be signed for. The key comes from
        DEFAULT_PRIVATE_KEY or, outside production, a local key file.
        """
        if not matches_public_domain(domain, self.settings.public_domain):
            logger.warning(
                f"Refusing to sign for external domain: {domain}. "
                f"We only sign for our domain: {self.settings.public_domain}"
            )
            return None

        if self.settings.default_private_key:
            logger.debug("Using default private key for badge signing")
            return decode_private_key(self.settings.default_private_key)

        if not self.settings.is_production:
            found = _read_first(self.settings.fallback_private_key_paths)
            if found is not None:
                pem, path = found
                logger.info(f"Using private key from file: {path} (development only)")
                return decode_private_key(pem)

        logger.error("No private key configured. Set DEFAULT_PRIVATE_KEY.")
        return None
