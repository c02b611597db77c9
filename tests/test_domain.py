"""Tests for the issuer domain policy."""

from dataclasses import replace

import dns.resolver
import pytest

from badge_trust.domain import (
    DomainClassifier,
    DomainTier,
    dns_exists,
    matches_public_domain,
    parse_host,
)
from badge_trust.errors import ErrorKind
from badge_trust.store import TrustRecord, TrustStatus

from conftest import fake_dns


def stored(store, domain: str, status: TrustStatus, last_error: str | None = None) -> None:
    store.put(
        domain,
        TrustRecord(
            domain=domain,
            id=f"https://{domain}/.well-known/openbadges-issuer.json",
            status=status,
            display_name="Stored Issuer",
            type="Profile",
            last_error=last_error,
        ),
    )


@pytest.fixture
def classifier(settings, store):
    return DomainClassifier(settings, store, dns_lookup=fake_dns)


class TestParseHost:
    """Tests for host extraction."""

    def test_url_and_bare_domain(self):
        assert parse_host("https://University.edu/badges/1").hostname == "university.edu"
        assert parse_host("university.edu").host == "university.edu"

    def test_port_kept_in_host_only(self):
        parts = parse_host("http://localhost:3000/issuer")
        assert parts.host == "localhost:3000"
        assert parts.hostname == "localhost"

    @pytest.mark.parametrize(
        "value", ["", "ftp://example.com/x", "https://", "not a url", "https://host:99999"]
    )
    def test_rejects_unusable_values(self, value):
        assert parse_host(value) is None

    def test_matches_public_domain(self):
        assert matches_public_domain("http://localhost:3000/badges", "localhost:3000")
        assert matches_public_domain("https://badges.example.net", "https://badges.example.net/")
        assert not matches_public_domain("https://university.edu", "localhost:3000")


class TestDomainClassifier:
    """Tests for tier assignment."""

    def test_own_domain_is_verified(self, classifier):
        result = classifier.classify("http://localhost:3000/issuer")

        assert result.valid
        assert result.tier is DomainTier.VERIFIED

    def test_verified_external(self, classifier, store):
        stored(store, "university.edu", TrustStatus.VERIFIED)

        result = classifier.classify("https://university.edu/issuer")

        assert result.valid
        assert result.tier is DomainTier.VERIFIED_EXTERNAL
        assert result.issuer.display_name == "Stored Issuer"

    def test_safe_test_domain(self, classifier):
        result = classifier.classify("demo.example.org")

        assert result.valid
        assert result.tier is DomainTier.TESTING
        assert result.warnings == ["Using example.com domain - safe for testing only"]

    def test_subdomain_of_safe_test_domain(self, classifier):
        assert classifier.classify("https://badges.example.com").tier is DomainTier.TESTING

    def test_unregistered_rejected_by_default(self, classifier):
        result = classifier.classify("https://no-such-host.invalid")

        assert not result.valid
        assert result.tier is DomainTier.UNREGISTERED
        assert result.error is ErrorKind.DOMAIN_POLICY_UNVERIFIED
        assert result.warnings

    def test_unregistered_allowed_when_enabled(self, settings, store):
        classifier = DomainClassifier(
            replace(settings, allow_unregistered_domains=True), store, dns_lookup=fake_dns
        )

        result = classifier.classify("https://no-such-host.invalid")

        assert result.valid
        assert result.tier is DomainTier.UNREGISTERED
        assert result.warnings == ["Using unregistered domain - ensure this is intentional"]

    def test_verification_failed(self, classifier, store):
        stored(store, "college.org", TrustStatus.FAILED, last_error="HTTP 404")

        result = classifier.classify("https://college.org/issuer")

        assert not result.valid
        assert result.tier is DomainTier.VERIFICATION_FAILED
        assert result.error is ErrorKind.DOMAIN_POLICY_BLOCKED
        assert result.last_error == "HTTP 404"

    def test_registered_but_unverified(self, classifier):
        result = classifier.classify("https://blocked.example/badge/1")

        assert not result.valid
        assert result.tier is DomainTier.UNVERIFIED
        assert result.error is ErrorKind.DOMAIN_POLICY_UNVERIFIED
        assert "blocked.example" in result.message

    def test_invalid_url(self, classifier):
        result = classifier.classify("ftp://example.com/file")

        assert not result.valid
        assert result.tier is DomainTier.INVALID
        assert result.error is ErrorKind.INVALID_URL

    def test_to_dict(self, classifier):
        data = classifier.classify("demo.example.org").to_dict()

        assert data["type"] == "testing"
        assert data["valid"] is True
        assert data["domain"] == "demo.example.org"


class TestDnsExists:
    """Tests for the dnspython lookup."""

    def test_ip_literal(self):
        assert dns_exists("127.0.0.1")

    def test_nxdomain(self, monkeypatch):
        def resolve(hostname, rdtype, lifetime):
            raise dns.resolver.NXDOMAIN()

        monkeypatch.setattr(dns.resolver, "resolve", resolve)
        assert not dns_exists("no-such-host.invalid")

    def test_falls_back_to_aaaa(self, monkeypatch):
        calls = []

        def resolve(hostname, rdtype, lifetime):
            calls.append(rdtype)
            if rdtype == "A":
                raise dns.resolver.NoAnswer()
            return object()

        monkeypatch.setattr(dns.resolver, "resolve", resolve)
        assert dns_exists("ipv6-only.example")
        assert calls == ["A", "AAAA"]

    def test_all_lookups_fail(self, monkeypatch):
        def resolve(hostname, rdtype, lifetime):
            raise dns.resolver.LifetimeTimeout()

        monkeypatch.setattr(dns.resolver, "resolve", resolve)
        assert not dns_exists("slow.example")
