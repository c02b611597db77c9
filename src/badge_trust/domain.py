"""
Issuer domain policy.

Assigns a policy tier to the host of a URL so that clearly fake test
domains can be used freely while any domain that plausibly belongs to a
real organization has to go through well-known verification first.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

import dns.exception
import dns.resolver

from badge_trust.config import Settings
from badge_trust.errors import ErrorKind
from badge_trust.store import TrustRecord, TrustStatus, TrustStore

logger = logging.getLogger(__name__)

DNS_LIFETIME = 5.0

_HOSTNAME = re.compile(r"^[a-z0-9._:\-]+$")


class DomainTier(Enum):
    """Policy tiers, in priority order."""

    VERIFIED = "verified"
    VERIFIED_EXTERNAL = "verified-external"
    TESTING = "testing"
    UNREGISTERED = "unregistered"
    VERIFICATION_FAILED = "verification-failed"
    UNVERIFIED = "unverified"
    INVALID = "invalid"


@dataclass
class DomainValidation:
    """Outcome of classifying a URL's host."""

    valid: bool
    tier: DomainTier
    message: str
    domain: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: ErrorKind | None = None
    last_error: str | None = None
    issuer: TrustRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "valid": self.valid,
            "type": self.tier.value,
            "domain": self.domain,
            "warnings": list(self.warnings),
            "message": self.message,
        }
        if self.error is not None:
            data["error"] = self.error.value
        if self.last_error is not None:
            data["lastError"] = self.last_error
        if self.issuer is not None:
            data["issuer"] = self.issuer.to_dict()
        return data


@dataclass(frozen=True)
class HostParts:
    """Lowercased host (with port) and hostname (without port)."""

    host: str
    hostname: str


def parse_host(url: str) -> HostParts | None:
    """Extract the host of an http(s) URL or bare domain.

    Returns:
        The host parts, or None if the value is not a usable http(s) URL.
    """
    raw = (url or "").strip()
    if not raw:
        return None
    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        parts = urlsplit(candidate)
        # Accessing .port validates it
        port = parts.port
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return None
    hostname = parts.hostname.lower()
    if not _HOSTNAME.match(hostname):
        return None
    host = f"{hostname}:{port}" if port is not None else hostname
    return HostParts(host=host, hostname=hostname)


def normalize_public_domain(public_domain: str | None) -> HostParts:
    """Normalize the configured public domain, defaulting to localhost:3000."""
    raw = (public_domain or "").strip() or "localhost:3000"
    parts = parse_host(raw)
    if parts is not None:
        return parts
    sanitized = raw.split("://", 1)[-1].split("/", 1)[0].lower()
    return HostParts(host=sanitized, hostname=sanitized.split(":", 1)[0] or sanitized)


def matches_public_domain(url: str, public_domain: str | None) -> bool:
    """Check whether a URL (or bare host) points at our own public domain."""
    parts = parse_host(url)
    if parts is None:
        return False
    ours = normalize_public_domain(public_domain)
    return parts.host == ours.host or parts.hostname == ours.hostname


def dns_exists(hostname: str) -> bool:
    """Return True if the hostname resolves to an A or AAAA record."""
    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        pass

    for rdtype in ("A", "AAAA"):
        try:
            dns.resolver.resolve(hostname, rdtype, lifetime=DNS_LIFETIME)
            return True
        except dns.resolver.NXDOMAIN:
            return False
        except dns.exception.DNSException as e:
            logger.debug(f"DNS {rdtype} lookup for {hostname} failed: {e}")
    return False


class DomainClassifier:
    """Classifies URLs into domain policy tiers."""

    def __init__(
        self,
        settings: Settings,
        store: TrustStore,
        dns_lookup: Callable[[str], bool] = dns_exists,
    ) -> None:
        """Initialize the classifier.

        Args:
            settings: Public domain, safe test domains and the unregistered
                domain policy.
            store: Trust store consulted for verified and failed issuers.
            dns_lookup: Returns True if a hostname exists in DNS.
        """
        self.settings = settings
        self.store = store
        self.dns_lookup = dns_lookup

    def is_safe_test_domain(self, hostname: str) -> bool:
        return any(
            hostname == safe or hostname.endswith("." + safe)
            for safe in self.settings.safe_test_domains
        )

    def classify(self, url: str) -> DomainValidation:
        """Assign a policy tier to the host of ``url``.

        Args:
            url: A full http(s) URL or a bare domain.

        Returns:
            DomainValidation describing the tier and whether the domain may
            be used.
        """
        parts = parse_host(url)
        if parts is None:
            return DomainValidation(
                valid=False,
                tier=DomainTier.INVALID,
                message="Invalid URL format",
                error=ErrorKind.INVALID_URL,
            )
        domain = parts.hostname

        if matches_public_domain(url, self.settings.public_domain):
            return DomainValidation(
                valid=True,
                tier=DomainTier.VERIFIED,
                domain=domain,
                message="Using verified Badge Trust issuer",
            )

        record = self.store.get(domain)
        if record is not None and record.status is TrustStatus.VERIFIED:
            return DomainValidation(
                valid=True,
                tier=DomainTier.VERIFIED_EXTERNAL,
                domain=domain,
                message=f"Using verified issuer: {record.display_name}",
                issuer=record,
            )

        if self.is_safe_test_domain(domain):
            return DomainValidation(
                valid=True,
                tier=DomainTier.TESTING,
                domain=domain,
                warnings=["Using example.com domain - safe for testing only"],
                message="Safe testing domain",
            )

        if not self.dns_lookup(domain):
            warning = "Using unregistered domain - ensure this is intentional"
            if self.settings.allow_unregistered_domains:
                return DomainValidation(
                    valid=True,
                    tier=DomainTier.UNREGISTERED,
                    domain=domain,
                    warnings=[warning],
                    message="Unregistered domain allowed",
                )
            return DomainValidation(
                valid=False,
                tier=DomainTier.UNREGISTERED,
                domain=domain,
                warnings=[warning],
                message=(
                    f"Domain '{domain}' did not resolve in DNS. Unregistered domains "
                    "are rejected unless the operator enables them"
                ),
                error=ErrorKind.DOMAIN_POLICY_UNVERIFIED,
            )

        if record is not None and record.status is TrustStatus.FAILED:
            return DomainValidation(
                valid=False,
                tier=DomainTier.VERIFICATION_FAILED,
                domain=domain,
                message=(
                    f"Domain '{domain}' verification failed. Please fix your "
                    "/.well-known/openbadges-issuer.json file and re-verify."
                ),
                error=ErrorKind.DOMAIN_POLICY_BLOCKED,
                last_error=record.last_error,
                issuer=record,
            )

        return DomainValidation(
            valid=False,
            tier=DomainTier.UNVERIFIED,
            domain=domain,
            message=(
                f"Domain '{domain}' appears to be registered but not verified. "
                "Verify it through the issuer verification flow or use "
                "example.com domains for testing."
            ),
            error=ErrorKind.DOMAIN_POLICY_UNVERIFIED,
        )
