"""
Detached Ed25519 signatures over credentials.

The signed bytes are the credential without its ``proof``, serialized as
compact JSON in the order the keys were received. Signer and verifier both
go through ``canonicalize`` so they always agree on the bytes.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from badge_trust.config import well_known_url
from badge_trust.key_codec import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

DEFAULT_PROOF_TYPE = "Ed25519Signature2020"
PROOF_PURPOSE = "assertionMethod"


class SignatureOutcome(Enum):
    """Signature verification outcomes."""

    SIGNATURE_VERIFIED = "signature_verified"
    SIGNATURE_INVALID = "signature_invalid"
    NO_PUBLIC_KEY = "no_public_key"
    INVALID_PROOF_FORMAT = "invalid_proof_format"
    NO_SIGNATURE = "no_signature"


_MESSAGES = {
    SignatureOutcome.SIGNATURE_VERIFIED: "Cryptographic signature is valid",
    SignatureOutcome.SIGNATURE_INVALID: "Cryptographic signature verification failed",
    SignatureOutcome.NO_PUBLIC_KEY: "No public key found for issuer",
    SignatureOutcome.INVALID_PROOF_FORMAT: "Unable to extract signature from proof",
    SignatureOutcome.NO_SIGNATURE: "Badge has no cryptographic proof/signature",
}


@dataclass
class SignatureResult:
    """Result of signature verification."""

    reason: SignatureOutcome
    message: str
    signature_type: str | None = None
    verification_method: str | None = None

    @property
    def valid(self) -> bool:
        return self.reason is SignatureOutcome.SIGNATURE_VERIFIED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "valid": self.valid,
            "type": self.reason.value,
            "message": self.message,
        }
        if self.signature_type is not None:
            data["signatureType"] = self.signature_type
        if self.verification_method is not None:
            data["verificationMethod"] = self.verification_method
        return data


@dataclass
class SignedCredential:
    """A credential with its freshly attached proof."""

    credential: dict[str, Any]
    signature: str
    verification_method: str


def _js_numbers(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    if isinstance(value, dict):
        return {k: _js_numbers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_js_numbers(v) for v in value]
    return value


def canonicalize(credential: dict[str, Any]) -> bytes:
    """Serialize a credential, minus its proof, to the bytes that get signed.

    Integral floats are written as integers (``1.0`` becomes ``1``), matching
    how JavaScript serializers emit numbers.
    """
    unsigned = {k: _js_numbers(v) for k, v in credential.items() if k != "proof"}
    return json.dumps(unsigned, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def extract_signature(proof: Any) -> str | None:
    """Pull the encoded signature out of a proof.

    A bare string proof is the signature itself; otherwise ``jws`` is
    preferred over ``proofValue``.
    """
    if isinstance(proof, str):
        return proof or None
    if isinstance(proof, dict):
        for name in ("jws", "proofValue"):
            value = proof.get(name)
            if isinstance(value, str) and value:
                return value
    return None


def _result(
    reason: SignatureOutcome,
    signature_type: str | None = None,
    verification_method: str | None = None,
) -> SignatureResult:
    return SignatureResult(
        reason=reason,
        message=_MESSAGES[reason],
        signature_type=signature_type,
        verification_method=verification_method,
    )


class SignatureVerifier:
    """Verifies and creates Ed25519 proofs on credentials."""

    def verify(
        self,
        credential: dict[str, Any],
        public_key: Ed25519PublicKey | None,
    ) -> SignatureResult:
        """Verify the detached signature of a credential.

        Args:
            credential: The signed credential, including its ``proof``.
            public_key: The issuer's key, or None if none could be resolved.

        Returns:
            SignatureResult describing the outcome.
        """
        proof = credential.get("proof")
        if not proof:
            return _result(SignatureOutcome.NO_SIGNATURE)

        signature = extract_signature(proof)
        if signature is None:
            return _result(SignatureOutcome.INVALID_PROOF_FORMAT)

        if public_key is None:
            return _result(SignatureOutcome.NO_PUBLIC_KEY)

        try:
            signature_bytes = b64url_decode(signature)
        except ValueError as e:
            logger.debug(f"Undecodable signature: {e}")
            return _result(SignatureOutcome.SIGNATURE_INVALID)

        try:
            # Ed25519 hashes internally; the message is passed as-is
            public_key.verify(signature_bytes, canonicalize(credential))
        except InvalidSignature:
            return _result(SignatureOutcome.SIGNATURE_INVALID)

        details = proof if isinstance(proof, dict) else {}
        return _result(
            SignatureOutcome.SIGNATURE_VERIFIED,
            signature_type=details.get("type") or DEFAULT_PROOF_TYPE,
            verification_method=details.get("verificationMethod") or "unknown",
        )

    def sign(
        self,
        credential: dict[str, Any],
        private_key: Ed25519PrivateKey,
        verification_method: str,
    ) -> SignedCredential:
        """Sign a credential and attach an Ed25519Signature2020 proof.

        Any existing proof is replaced.

        Args:
            credential: The credential to sign.
            private_key: The issuer's signing key.
            verification_method: URL of the key, e.g. ``{issuer}#key``.

        Returns:
            SignedCredential with the new document and encoded signature.
        """
        unsigned = {k: copy.deepcopy(v) for k, v in credential.items() if k != "proof"}
        signature = b64url_encode(private_key.sign(canonicalize(unsigned)))

        signed = dict(unsigned)
        signed["proof"] = {
            "type": DEFAULT_PROOF_TYPE,
            "created": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "verificationMethod": verification_method,
            "proofPurpose": PROOF_PURPOSE,
            "jws": signature,
        }
        return SignedCredential(
            credential=signed,
            signature=signature,
            verification_method=verification_method,
        )


def issuer_url_of(credential: dict[str, Any]) -> str | None:
    """Return the issuer URL a credential names, for v3 or v2 shapes."""
    issuer = credential.get("issuer")
    if isinstance(issuer, str):
        return issuer
    if isinstance(issuer, dict):
        for name in ("id", "url"):
            if isinstance(issuer.get(name), str):
                return issuer[name]
    return None


def resolve_verification_method(
    credential: dict[str, Any],
    domain: str | None = None,
    issuer_url: str | None = None,
    verification_method: str | None = None,
) -> str:
    """Work out the verificationMethod to put in a proof.

    An explicit value wins; then ``{issuer}#key`` from ``issuer_url`` or the
    credential's issuer; then the domain's well-known document.

    Raises:
        ValueError: If nothing identifies the signing key.
    """
    if verification_method:
        return verification_method

    resolved_issuer = issuer_url or issuer_url_of(credential)
    if resolved_issuer:
        base = resolved_issuer.split("#", 1)[0].rstrip("/")
        return f"{base}#key"

    if domain:
        host = domain.split("://", 1)[-1].split("/", 1)[0].lower()
        return f"{well_known_url(host)}#key"

    raise ValueError(
        "Unable to determine verification method. Provide a verification "
        "method, an issuer URL or a domain"
    )
