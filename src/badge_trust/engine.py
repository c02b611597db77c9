"""
Badge Trust engine.

Wires domain policy, issuer verification, key resolution, structure
validation, signatures and trust classification behind a small set of
entry points.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from badge_trust.config import KEY_FILES_DIR, Settings
from badge_trust.domain import (
    DomainClassifier,
    DomainValidation,
    dns_exists,
    matches_public_domain,
    parse_host,
)
from badge_trust.errors import (
    BadgeTrustError,
    CredentialInputError,
    ErrorKind,
    FetchError,
    SigningError,
    VerificationError,
)
from badge_trust.fetcher import Fetcher, HttpxFetcher
from badge_trust.issuer import (
    IssuerCheck,
    IssuerVerificationOutcome,
    IssuerVerifier,
    build_issuer_document,
    reference_url,
)
from badge_trust.key_codec import KeyPair, generate_key_pair
from badge_trust.keys import KeyMaterial, KeyResolver
from badge_trust.signature import (
    SignatureResult,
    SignatureVerifier,
    SignedCredential,
    issuer_url_of,
    resolve_verification_method,
)
from badge_trust.store import (
    FileKeyCache,
    FileTrustStore,
    KeyCache,
    TrustRecord,
    TrustStore,
    utc_now,
)
from badge_trust.structure import (
    CredentialStructureValidator,
    CredentialVersion,
    StructureResult,
)
from badge_trust.trust import TrustClassifier, TrustLevel

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Complete credential verification result."""

    structure: StructureResult
    trust_level: TrustLevel
    valid: bool
    source: str
    issuer: IssuerCheck | None = None
    signature: SignatureResult | None = None
    verified_at: str = field(default_factory=utc_now)
    credential: dict[str, Any] | None = None

    @property
    def version(self) -> CredentialVersion:
        return self.structure.version

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "trustLevel": self.trust_level.value,
            "version": self.version.value,
            "source": self.source,
            "verifiedAt": self.verified_at,
            "structure": self.structure.to_dict(),
            "issuer": self.issuer.to_dict() if self.issuer else None,
            "signature": self.signature.to_dict() if self.signature else None,
        }


@dataclass
class GeneratedIssuerFiles:
    """Files written by ``generate_issuer_files``."""

    directory: Path
    document: dict[str, Any]
    key_pair: KeyPair

    @property
    def document_path(self) -> Path:
        return self.directory / "openbadges-issuer.json"

    @property
    def private_key_path(self) -> Path:
        return self.directory / "private-key.pem"

    @property
    def public_key_path(self) -> Path:
        return self.directory / "public-key.pem"


class BadgeTrustEngine:
    """Entry point for domain, issuer and credential verification."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: TrustStore | None = None,
        key_cache: KeyCache | None = None,
        fetcher: Fetcher | None = None,
        dns_lookup: Callable[[str], bool] = dns_exists,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Runtime settings. Read from the environment if not provided.
            store: Trust store. A file store under ``settings.data_dir`` if not provided.
            key_cache: Public key cache. A file cache under ``settings.data_dir``
                if not provided.
            fetcher: HTTP fetcher. An httpx fetcher if not provided.
            dns_lookup: Hostname existence check used by the domain policy.
        """
        self.settings = settings or Settings.from_env()
        self.store = store or FileTrustStore(self.settings.trust_store_path)
        self.key_cache = key_cache or FileKeyCache(self.settings.key_cache_dir)
        self.fetcher = fetcher or HttpxFetcher(user_agent=self.settings.user_agent)

        self.classifier = DomainClassifier(self.settings, self.store, dns_lookup)
        self.issuer_verifier = IssuerVerifier(
            self.settings, self.store, self.fetcher, self.classifier
        )
        self.key_resolver = KeyResolver(self.settings, self.key_cache)
        self.structure_validator = CredentialStructureValidator()
        self.signature_verifier = SignatureVerifier()
        self.trust_classifier = TrustClassifier()

    # -------------------------------------------------------------------------
    # Domains and issuers
    # -------------------------------------------------------------------------

    def validate_domain(self, url: str) -> DomainValidation:
        """Classify the host of ``url`` into a domain policy tier."""
        return self.classifier.classify(url)

    def verify_issuer(self, domain: str) -> IssuerVerificationOutcome:
        """Verify a domain's well-known issuer document and record the result."""
        return self.issuer_verifier.verify(domain)

    def reverify_issuer(self, domain: str) -> IssuerVerificationOutcome:
        return self.issuer_verifier.reverify(domain)

    def get_issuer(self, domain: str) -> TrustRecord | None:
        parts = parse_host(domain)
        return self.store.get(parts.hostname if parts else domain)

    def list_issuers(self) -> list[TrustRecord]:
        return sorted(self.store.list(), key=lambda record: record.domain)

    def verify_issuer_url(self, url: str) -> IssuerCheck:
        """Check an issuer URL the way credential verification does."""
        return self.issuer_verifier.check_issuer_reference(url)

    def cache_public_key(self, issuer_url: str) -> KeyMaterial | None:
        """Fetch an issuer document and cache the public key it publishes.

        Returns:
            The cached key, or None if the document embeds no usable key.

        Raises:
            FetchError: If the issuer document cannot be fetched or parsed.
        """
        parts = parse_host(issuer_url)
        if parts is None:
            raise BadgeTrustError(f"Invalid issuer URL: {issuer_url}", ErrorKind.INVALID_URL)

        doc = self.issuer_verifier.fetch_document(issuer_url)
        if isinstance(doc, VerificationError):
            raise FetchError(doc.message, kind=doc.kind)
        return self.key_resolver.from_issuer_document(doc, parts.hostname)

    def generate_issuer_files(
        self,
        name: str,
        url: str,
        email: str | None = None,
        description: str | None = None,
        output_dir: str | Path = KEY_FILES_DIR,
    ) -> GeneratedIssuerFiles:
        """Generate a key pair and the well-known document for a new issuer.

        Writes ``openbadges-issuer.json``, ``private-key.pem`` and
        ``public-key.pem`` to ``output_dir``.
        """
        if parse_host(url) is None:
            raise BadgeTrustError(f"Invalid issuer URL: {url}", ErrorKind.INVALID_URL)

        key_pair = generate_key_pair()
        document = build_issuer_document(
            name=name,
            url=url,
            public_key_multibase=key_pair.public_key_multibase,
            email=email,
            description=description,
        )

        files = GeneratedIssuerFiles(
            directory=Path(output_dir), document=document, key_pair=key_pair
        )
        files.directory.mkdir(parents=True, exist_ok=True)
        files.document_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        files.public_key_path.write_text(key_pair.public_key_pem, encoding="utf-8")
        files.private_key_path.write_text(key_pair.private_key_pem, encoding="utf-8")
        os.chmod(files.private_key_path, 0o600)

        logger.info(f"Generated issuer files for {name} in {files.directory}")
        return files

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def verify_credential(self, source: dict[str, Any] | str) -> VerificationResult:
        """Verify a credential.

        Performs:
        1. Structure validation
        2. Issuer check (domain policy, trust store, remote issuer document)
        3. Signature verification, when the credential carries a proof and
           the issuer check passed

        Args:
            source: The credential as a dict, a raw JSON string or a URL.

        Returns:
            VerificationResult with every sub-result and the trust level.

        Raises:
            CredentialInputError: If the input is not a JSON object.
            FetchError: If a credential URL cannot be fetched.
        """
        credential, origin = self._load_credential(source)

        structure = self.structure_validator.validate(credential)
        issuer = self._check_issuer(credential, structure.version)
        signature: SignatureResult | None = None
        if issuer is not None and issuer.valid and credential.get("proof"):
            signature = self._check_signature(credential, issuer)

        trust_level = self.trust_classifier.classify(structure, issuer, signature)
        valid = self.trust_classifier.overall_valid(structure, issuer, signature)
        logger.info(f"Verified credential from {origin}: {trust_level.value}")

        return VerificationResult(
            structure=structure,
            trust_level=trust_level,
            valid=valid,
            source=origin,
            issuer=issuer,
            signature=signature,
            credential=credential,
        )

    def sign_credential(
        self,
        credential: dict[str, Any],
        signing_domain: str,
        verification_method: str | None = None,
        private_key: Ed25519PrivateKey | None = None,
    ) -> SignedCredential:
        """Sign a credential on behalf of a domain.

        Without an explicit ``private_key`` only our own public domain can
        be signed for, using the configured signing key.

        Raises:
            SigningError: If the domain is foreign or no key is available.
        """
        if not isinstance(credential, dict):
            raise CredentialInputError("Credential must be a JSON object")

        if private_key is None:
            if not matches_public_domain(signing_domain, self.settings.public_domain):
                raise SigningError(
                    f"Cannot sign for external domain: {signing_domain}. "
                    f"Only {self.settings.public_domain} can be signed for",
                    kind=ErrorKind.DOMAIN_POLICY_BLOCKED,
                )
            private_key = self.key_resolver.signing_key(signing_domain)
            if private_key is None:
                raise SigningError(f"No private key available for {signing_domain}")

        method = resolve_verification_method(
            credential,
            domain=signing_domain,
            verification_method=verification_method,
        )
        signed = self.signature_verifier.sign(credential, private_key, method)
        logger.info(f"Signed credential for {signing_domain} with {method}")
        return signed

    def _load_credential(self, source: dict[str, Any] | str) -> tuple[dict[str, Any], str]:
        if isinstance(source, dict):
            return source, "object"
        if not isinstance(source, str):
            raise CredentialInputError("Credential must be a JSON object, JSON text or URL")

        text = source.strip()
        if text.startswith(("http://", "https://")):
            return self._fetch_credential(text), text

        try:
            doc = json.loads(text)
        except ValueError as e:
            raise CredentialInputError(f"Invalid JSON: {e}") from e
        if not isinstance(doc, dict):
            raise CredentialInputError("Credential must be a JSON object")
        return doc, "json"

    def _fetch_credential(self, url: str) -> dict[str, Any]:
        response = self.fetcher.fetch(url, self.settings.fetch_timeout)
        if not response.ok:
            raise FetchError(
                f"Failed to fetch credential: HTTP {response.status}",
                status=response.status,
            )
        try:
            doc = response.json()
        except ValueError as e:
            raise CredentialInputError(f"Credential at {url} is not valid JSON: {e}") from e
        if not isinstance(doc, dict):
            raise CredentialInputError(f"Credential at {url} is not a JSON object")
        return doc

    def _check_issuer(
        self, credential: dict[str, Any], version: CredentialVersion
    ) -> IssuerCheck | None:
        issuer_url = issuer_url_of(credential)
        if issuer_url:
            return self.issuer_verifier.check_issuer_reference(issuer_url)

        if version is CredentialVersion.V2:
            badge = credential.get("badge")
            if isinstance(badge, dict) and reference_url(badge.get("issuer")):
                return self.issuer_verifier.check_issuer_reference(
                    reference_url(badge["issuer"])
                )
            badge_url = reference_url(badge)
            if badge_url:
                return self.issuer_verifier.check_badge_reference(badge_url)

        logger.debug("Credential names no issuer to check")
        return None

    def _check_signature(
        self, credential: dict[str, Any], issuer: IssuerCheck
    ) -> SignatureResult:
        # Keys are bound to the host the issuer was checked on, not its claimed id
        key = self.key_resolver.resolve(issuer.issuer or {}, issuer.url)
        return self.signature_verifier.verify(
            credential, key.public_key if key is not None else None
        )
