"""Shared fixtures for Badge Trust tests."""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from badge_trust import BadgeTrustEngine, MemoryKeyCache, MemoryTrustStore, Settings
from badge_trust.key_codec import KeyFormat, encode_private_key, encode_public_key

# Hosts the fake DNS knows about; everything else is unregistered
REGISTERED_HOSTS = {"university.edu", "blocked.example", "college.org"}


def fake_dns(hostname: str) -> bool:
    return hostname in REGISTERED_HOSTS


@pytest.fixture
def private_key():
    """Generate a test Ed25519 private key."""
    return Ed25519PrivateKey.generate()


@pytest.fixture
def public_key(private_key):
    return private_key.public_key()


@pytest.fixture
def private_pem(private_key):
    return encode_private_key(private_key)


@pytest.fixture
def public_pem(public_key):
    return encode_public_key(public_key, KeyFormat.PEM)


@pytest.fixture
def public_multibase(public_key):
    return encode_public_key(public_key, KeyFormat.MULTIBASE)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings isolated in a temporary working directory."""
    monkeypatch.chdir(tmp_path)
    return Settings(data_dir=tmp_path / "uploads")


@pytest.fixture
def store():
    return MemoryTrustStore()


@pytest.fixture
def key_cache():
    return MemoryKeyCache()


@pytest.fixture
def engine(settings, store, key_cache):
    """Engine with in-memory stores and fake DNS, using the real httpx fetcher."""
    return BadgeTrustEngine(
        settings=settings,
        store=store,
        key_cache=key_cache,
        dns_lookup=fake_dns,
    )


@pytest.fixture
def well_known_doc(public_multibase):
    """A valid well-known issuer document for university.edu."""
    url = "https://university.edu/.well-known/openbadges-issuer.json"
    return {
        "@context": "https://w3id.org/openbadges/v2",
        "id": url,
        "type": "Profile",
        "name": "State University",
        "url": "https://university.edu",
        "email": "badges@university.edu",
        "publicKey": {
            "id": f"{url}#key",
            "type": "Ed25519VerificationKey2020",
            "controller": url,
            "publicKeyMultibase": public_multibase,
        },
    }


@pytest.fixture
def v3_credential():
    """An unsigned Open Badges 3.0 credential from a test-domain issuer."""
    return {
        "@context": [
            "https://www.w3.org/ns/credentials/v2",
            "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
        ],
        "id": "https://issuer.example.org/credentials/1",
        "type": ["VerifiableCredential", "OpenBadgeCredential"],
        "issuer": {
            "id": "https://issuer.example.org/issuer",
            "type": "Profile",
            "name": "Example Issuer",
        },
        "validFrom": "2024-01-01T00:00:00Z",
        "credentialSubject": {
            "type": "AchievementSubject",
            "achievement": {
                "id": "https://issuer.example.org/achievements/1",
                "type": "Achievement",
                "name": "Completed the course",
            },
        },
    }


@pytest.fixture
def v2_assertion():
    """An Open Badges 2.0 assertion."""
    return {
        "@context": "https://w3id.org/openbadges/v2",
        "type": "Assertion",
        "id": "https://issuer.example.org/assertions/1",
        "recipient": {"type": "email", "hashed": False, "identity": "ada@example.org"},
        "badge": "https://issuer.example.org/badges/1",
        "issuedOn": "2024-01-01T00:00:00Z",
        "verification": {"type": "hosted"},
    }
