"""
Configuration for the Badge Trust engine.

All configurable values are read from environment variables with sensible
defaults, so development, staging and production deployments can differ
without code changes.

Environment Variables:
    PUBLIC_DOMAIN: This service's own public domain (default: localhost:3000)
    DEFAULT_PUBLIC_KEY: PEM public key used for our own domain
    DEFAULT_PRIVATE_KEY: PEM private key used to sign for our own domain
    BADGE_TRUST_ENV: Deployment environment (default: development)
    BADGE_TRUST_DATA_DIR: Directory for the trust store and key cache (default: uploads)
    BADGE_TRUST_SAFE_TEST_DOMAINS: Comma-separated safe test domains
    BADGE_TRUST_ALLOW_UNREGISTERED: Accept domains that fail DNS lookup (default: false)
    BADGE_TRUST_FETCH_TIMEOUT: HTTP timeout in seconds (default: 10)
    BADGE_TRUST_USER_AGENT: User-Agent sent with every fetch
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PUBLIC_DOMAIN: Final[str] = "localhost:3000"

DEFAULT_SAFE_TEST_DOMAINS: Final[tuple[str, ...]] = (
    "example.com",
    "example.org",
    "example.net",
    "test.example.com",
    "demo.example.org",
    "localhost",
    "127.0.0.1",
)

DEFAULT_FETCH_TIMEOUT: Final[float] = 10.0

DEFAULT_USER_AGENT: Final[str] = "Badge-Trust-Verifier/1.0"

WELL_KNOWN_PATH: Final[str] = "/.well-known/openbadges-issuer.json"

PRODUCTION: Final[str] = "production"

# Development-only key files, checked in order
KEY_FILES_DIR: Final[str] = "issuer-verification-files"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if not value:
        return default
    return tuple(item.strip().lower() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the engine.

    Build one with ``Settings.from_env()`` or construct it directly in tests.
    """

    public_domain: str = DEFAULT_PUBLIC_DOMAIN
    safe_test_domains: tuple[str, ...] = DEFAULT_SAFE_TEST_DOMAINS
    allow_unregistered_domains: bool = False
    environment: str = "development"
    data_dir: Path = field(default_factory=lambda: Path("uploads"))
    default_public_key: str | None = None
    default_private_key: str | None = None
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> Settings:
        """Create settings from the process environment."""
        return cls(
            public_domain=os.getenv("PUBLIC_DOMAIN", DEFAULT_PUBLIC_DOMAIN),
            safe_test_domains=_env_list(
                "BADGE_TRUST_SAFE_TEST_DOMAINS", DEFAULT_SAFE_TEST_DOMAINS
            ),
            allow_unregistered_domains=_env_bool("BADGE_TRUST_ALLOW_UNREGISTERED"),
            environment=os.getenv("BADGE_TRUST_ENV", "development"),
            data_dir=Path(os.getenv("BADGE_TRUST_DATA_DIR", "uploads")),
            default_public_key=os.getenv("DEFAULT_PUBLIC_KEY") or None,
            default_private_key=os.getenv("DEFAULT_PRIVATE_KEY") or None,
            fetch_timeout=float(
                os.getenv("BADGE_TRUST_FETCH_TIMEOUT", str(DEFAULT_FETCH_TIMEOUT))
            ),
            user_agent=os.getenv("BADGE_TRUST_USER_AGENT", DEFAULT_USER_AGENT),
        )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == PRODUCTION

    @property
    def trust_store_path(self) -> Path:
        return self.data_dir / "verified-issuers.json"

    @property
    def key_cache_dir(self) -> Path:
        return self.data_dir / "cached-public-keys"

    @property
    def fallback_public_key_paths(self) -> tuple[Path, ...]:
        return (
            Path(KEY_FILES_DIR) / "public-key.pem",
            self.data_dir / "default-public-key.pem",
        )

    @property
    def fallback_private_key_paths(self) -> tuple[Path, ...]:
        return (
            Path(KEY_FILES_DIR) / "private-key.pem",
            self.data_dir / "default-private-key.pem",
        )


def well_known_url(domain: str) -> str:
    """Return the well-known issuer document URL for a domain."""
    return f"https://{domain}{WELL_KNOWN_PATH}"
