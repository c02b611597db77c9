"""
Issuer identity verification.

A domain proves it runs an issuer by publishing an Issuer/Profile document
at ``https://{domain}/.well-known/openbadges-issuer.json`` whose ``id`` is
bound to that domain. Successful verifications are recorded in the trust
store; later failures degrade the record to ``failed`` without deleting it.

Issuer references found inside credentials are checked against the domain
policy, then the trust store, then by fetching the issuer document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from badge_trust.config import Settings, well_known_url
from badge_trust.domain import DomainClassifier, DomainTier, parse_host
from badge_trust.errors import ErrorKind, FetchError, VerificationError
from badge_trust.fetcher import Fetcher
from badge_trust.store import TrustRecord, TrustStatus, TrustStore, utc_now

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "type", "name")
VALID_TYPES = ("Issuer", "Profile")
# Issuer documents that are not v3 Profiles follow the v2 Issuer shape
V2_ISSUER_REQUIRED_FIELDS = ("@context", "type", "name", "url")


class IssuerResolution(Enum):
    """How an issuer referenced by a credential was established."""

    LOCALLY_VERIFIED = "locally_verified"
    REMOTE_VERIFIED = "remote_verified"


@dataclass
class IssuerVerificationOutcome:
    """Result of well-known issuer verification for a domain."""

    domain: str
    well_known_url: str | None = None
    record: TrustRecord | None = None
    error: VerificationError | None = None

    @property
    def success(self) -> bool:
        return self.record is not None and self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.message
        if self.record is None:
            return "Issuer verification did not complete"
        return f"Successfully verified issuer: {self.record.display_name}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "domain": self.domain,
            "status": TrustStatus.VERIFIED.value if self.success else TrustStatus.FAILED.value,
            "message": self.message,
            "wellKnownUrl": self.well_known_url,
        }
        if self.record is not None:
            data["issuer"] = self.record.to_dict()
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class IssuerCheck:
    """Result of checking an issuer referenced by a credential."""

    valid: bool
    url: str
    message: str
    method: IssuerResolution | None = None
    issuer: dict[str, Any] | None = None
    error: VerificationError | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, url: str, error: VerificationError) -> IssuerCheck:
        return cls(valid=False, url=url, message=error.message, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "valid": self.valid,
            "url": self.url,
            "message": self.message,
            "warnings": list(self.warnings),
        }
        if self.method is not None:
            data["type"] = self.method.value
        if self.issuer is not None:
            data["issuer"] = self.issuer
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


def reference_url(value: Any) -> str | None:
    """Return the URL of a reference given as a string or an ``{id}`` object."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    return None


def build_issuer_document(
    name: str,
    url: str,
    public_key_multibase: str,
    email: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Build the well-known Profile document an issuer should publish."""
    base = url.rstrip("/")
    doc_id = f"{base}/.well-known/openbadges-issuer.json"
    doc: dict[str, Any] = {
        "@context": [
            "https://www.w3.org/ns/credentials/v2",
            "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
        ],
        "id": doc_id,
        "type": "Profile",
        "name": name,
        "url": base,
        "email": email,
        "description": description or f"Official issuer profile for {name}",
        "publicKey": {
            "id": f"{doc_id}#key",
            "type": "Ed25519VerificationKey2020",
            "controller": doc_id,
            "publicKeyMultibase": public_key_multibase,
        },
    }
    return {k: v for k, v in doc.items() if v is not None}


class IssuerVerifier:
    """Verifies issuers through well-known documents and direct fetches."""

    def __init__(
        self,
        settings: Settings,
        store: TrustStore,
        fetcher: Fetcher,
        classifier: DomainClassifier,
    ) -> None:
        self.settings = settings
        self.store = store
        self.fetcher = fetcher
        self.classifier = classifier

    # -------------------------------------------------------------------------
    # Well-known verification
    # -------------------------------------------------------------------------

    def verify(self, domain: str) -> IssuerVerificationOutcome:
        """Verify a domain's well-known issuer document and record the result.

        Args:
            domain: A bare domain (``example.org``) or a URL on that domain.

        Returns:
            IssuerVerificationOutcome holding the stored TrustRecord on
            success, or the VerificationError on failure.
        """
        parts = parse_host(domain)
        if parts is None:
            return IssuerVerificationOutcome(
                domain=domain,
                error=VerificationError(
                    ErrorKind.INVALID_URL,
                    f"Invalid domain format: {domain!r}",
                    {"domain": domain},
                ),
            )

        host, key = parts.host, parts.hostname
        url = well_known_url(host)
        logger.info(f"Verifying issuer domain: {host}")
        logger.debug(f"Fetching: {url}")

        doc = self.fetch_document(url, require_json_content_type=True)
        if isinstance(doc, VerificationError):
            return self._fail(key, host, url, doc)
        error = self._check_well_known(doc, host, url)
        if error is not None:
            return self._fail(key, host, url, error)

        now = utc_now()
        public_key = doc.get("publicKey")
        public_keys = doc.get("publicKeys")
        if not isinstance(public_keys, list):
            public_keys = []
        record = TrustRecord(
            domain=key,
            id=doc["id"],
            status=TrustStatus.VERIFIED,
            display_name=doc["name"],
            type=doc["type"],
            url=doc.get("url") or f"https://{host}",
            email=doc.get("email"),
            description=doc.get("description"),
            public_keys=[public_key] if public_key else list(public_keys),
            well_known_url=url,
            last_verified=now,
            last_verification_attempt=now,
            verification_method="well-known",
            raw_data=doc,
        )
        stored = self.store.update(key, lambda _current: record)
        logger.info(f"Successfully verified issuer: {record.display_name} ({key})")
        return IssuerVerificationOutcome(domain=key, well_known_url=url, record=stored)

    def reverify(self, domain: str) -> IssuerVerificationOutcome:
        """Explicitly re-run well-known verification for a domain."""
        logger.info(f"Re-verifying issuer domain: {domain}")
        return self.verify(domain)

    def _check_well_known(
        self, doc: dict[str, Any], host: str, url: str
    ) -> VerificationError | None:
        missing = [name for name in REQUIRED_FIELDS if not doc.get(name)]
        if missing:
            return VerificationError(
                ErrorKind.SCHEMA_VALIDATION_FAILURE,
                f"Missing required fields: {', '.join(missing)}",
                {"url": url, "missingFields": missing},
            )

        if doc["type"] not in VALID_TYPES:
            return VerificationError(
                ErrorKind.INVALID_TYPE,
                f"Invalid type '{doc['type']}'. Must be 'Issuer' or 'Profile'",
                {"url": url, "type": doc["type"]},
            )

        expected = [url, f"https://{host}", f"https://{host}/"]
        if doc["id"] not in expected:
            return VerificationError(
                ErrorKind.IDENTITY_BINDING_MISMATCH,
                f"Issuer ID '{doc['id']}' does not match domain '{host}'",
                {"url": url, "expected": expected, "actual": doc["id"]},
            )
        return None

    def _fail(
        self, key: str, host: str, url: str, error: VerificationError
    ) -> IssuerVerificationOutcome:
        logger.warning(f"Issuer verification failed for {host}: {error.message}")
        self._record_failure(key, error)
        return IssuerVerificationOutcome(domain=key, well_known_url=url, error=error)

    def _record_failure(self, key: str, error: VerificationError) -> None:
        """Degrade an existing record to failed, keeping its metadata."""

        def mark_failed(current: TrustRecord | None) -> TrustRecord | None:
            if current is None:
                return None
            return replace(
                current,
                status=TrustStatus.FAILED,
                last_error=error.message,
                last_verification_attempt=utc_now(),
            )

        updated = self.store.update(key, mark_failed)
        if updated is not None:
            logger.info(f"Marked issuer {key} as failed: {error.message}")

    # -------------------------------------------------------------------------
    # Issuer references inside credentials
    # -------------------------------------------------------------------------

    def check_issuer_reference(self, issuer_url: str) -> IssuerCheck:
        """Check the issuer a credential points at.

        The URL must pass the domain policy. A verified trust record for its
        host settles the check locally; otherwise the issuer document is
        fetched and validated directly.
        """
        policy_error, record = self._check_policy(issuer_url)
        if policy_error is not None:
            return IssuerCheck.failure(issuer_url, policy_error)
        if record is not None:
            return self._locally_verified(issuer_url, record)

        doc = self.fetch_document(issuer_url, require_json_content_type=False)
        if isinstance(doc, VerificationError):
            return IssuerCheck.failure(issuer_url, doc)

        required = REQUIRED_FIELDS if doc.get("type") == "Profile" else V2_ISSUER_REQUIRED_FIELDS
        missing = [name for name in required if not doc.get(name)]
        if missing:
            return IssuerCheck.failure(
                issuer_url,
                VerificationError(
                    ErrorKind.SCHEMA_VALIDATION_FAILURE,
                    f"Missing required fields: {', '.join(missing)}",
                    {"url": issuer_url, "missingFields": missing},
                ),
            )

        warnings: list[str] = []
        if not self._id_matches(doc, issuer_url):
            logger.warning(f"Issuer ID mismatch: ID='{doc.get('id')}', URL='{issuer_url}'")
            warnings.append(
                f"Issuer ID '{doc.get('id')}' does not match the URL it was fetched from"
            )

        return IssuerCheck(
            valid=True,
            url=issuer_url,
            message=f"Issuer verified from remote URL: {doc['name']}",
            method=IssuerResolution.REMOTE_VERIFIED,
            issuer=doc,
            warnings=warnings,
        )

    def check_badge_reference(self, badge_url: str) -> IssuerCheck:
        """Check the issuer of a v2 assertion through its BadgeClass.

        Used when an assertion names no issuer itself: the BadgeClass at
        ``badge_url`` is fetched and its ``issuer`` is checked.
        """
        policy_error, record = self._check_policy(badge_url)
        if policy_error is not None:
            return IssuerCheck.failure(badge_url, policy_error)
        if record is not None:
            return self._locally_verified(badge_url, record)

        badge_class = self.fetch_document(badge_url, require_json_content_type=False)
        if isinstance(badge_class, VerificationError):
            return IssuerCheck.failure(badge_url, badge_class)

        issuer_url = reference_url(badge_class.get("issuer"))
        if issuer_url is None:
            return IssuerCheck.failure(
                badge_url,
                VerificationError(
                    ErrorKind.SCHEMA_VALIDATION_FAILURE,
                    "BadgeClass does not reference an issuer",
                    {"url": badge_url, "missingFields": ["issuer"]},
                ),
            )
        return self.check_issuer_reference(issuer_url)

    def _check_policy(
        self, url: str
    ) -> tuple[VerificationError | None, TrustRecord | None]:
        validation = self.classifier.classify(url)
        if not validation.valid:
            details: dict[str, Any] = {"url": url, "tier": validation.tier.value}
            if validation.last_error:
                details["lastError"] = validation.last_error
            return (
                VerificationError(
                    validation.error or ErrorKind.INVALID_URL,
                    validation.message,
                    details,
                ),
                None,
            )

        record = validation.issuer
        if record is None and validation.tier is DomainTier.VERIFIED and validation.domain:
            record = self.store.get(validation.domain)
        if record is not None and record.is_verified:
            return None, record
        return None, None

    def _locally_verified(self, url: str, record: TrustRecord) -> IssuerCheck:
        return IssuerCheck(
            valid=True,
            url=url,
            message=f"Issuer verified locally: {record.display_name}",
            method=IssuerResolution.LOCALLY_VERIFIED,
            issuer=record.to_dict(),
        )

    @staticmethod
    def _id_matches(doc: dict[str, Any], issuer_url: str) -> bool:
        doc_id = doc.get("id")
        if doc_id == issuer_url or doc.get("originalId") == issuer_url:
            return True
        if doc_id and doc_id == doc.get("originalId"):
            return True
        return isinstance(doc_id, str) and doc_id.rstrip("/") == issuer_url.rstrip("/")

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def fetch_document(
        self, url: str, require_json_content_type: bool = False
    ) -> dict[str, Any] | VerificationError:
        """Fetch a JSON object.

        Returns:
            The parsed document, or the VerificationError describing why it
            could not be fetched or parsed.
        """
        try:
            response = self.fetcher.fetch(url, self.settings.fetch_timeout)
        except FetchError as e:
            return e.to_verification_error(url=url)

        if not response.ok:
            return VerificationError(
                ErrorKind.FETCH_FAILURE,
                f"Failed to fetch {url}: HTTP {response.status}",
                {"url": url, "status": response.status},
            )

        if require_json_content_type and not response.is_json:
            content_type = response.content_type or None
            return VerificationError(
                ErrorKind.NON_JSON_RESPONSE,
                f"Document is not JSON (content-type: {content_type})",
                {"url": url, "contentType": content_type},
            )

        try:
            doc = response.json()
        except ValueError as e:
            return VerificationError(
                ErrorKind.INVALID_JSON,
                f"Invalid JSON in {url}: {e}",
                {"url": url},
            )
        if not isinstance(doc, dict):
            return VerificationError(
                ErrorKind.INVALID_JSON,
                f"Document at {url} is not a JSON object",
                {"url": url},
            )
        return doc
