"""
Error taxonomy for badge verification.

Verification sub-steps report failures as ``VerificationError`` values
inside their result objects. Exceptions are reserved for collaborator
failures (``FetchError``, ``KeyFormatError``) and for bad input at the
public entry points.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Kinds of verification failure."""

    INVALID_URL = "InvalidURL"
    FETCH_FAILURE = "FetchFailure"
    FETCH_TIMEOUT = "FetchTimeout"
    NON_JSON_RESPONSE = "NonJSONResponse"
    INVALID_JSON = "InvalidJSON"
    SCHEMA_VALIDATION_FAILURE = "SchemaValidationFailure"
    INVALID_TYPE = "InvalidType"
    IDENTITY_BINDING_MISMATCH = "IdentityBindingMismatch"
    UNSUPPORTED_KEY_FORMAT = "UnsupportedKeyFormat"
    NO_KEY_AVAILABLE = "NoKeyAvailable"
    SIGNATURE_INVALID = "SignatureInvalid"
    DOMAIN_POLICY_BLOCKED = "DomainPolicyBlocked"
    DOMAIN_POLICY_UNVERIFIED = "DomainPolicyUnverified"


@dataclass
class VerificationError:
    """A tagged verification failure."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class BadgeTrustError(Exception):
    """Base class for errors raised by the engine."""

    kind: ErrorKind = ErrorKind.INVALID_URL

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    def to_verification_error(self, **details: Any) -> VerificationError:
        return VerificationError(kind=self.kind, message=str(self), details=details)


class FetchError(BadgeTrustError):
    """Raised when a document cannot be fetched."""

    kind = ErrorKind.FETCH_FAILURE

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, kind)
        self.status = status


class KeyFormatError(BadgeTrustError):
    """Raised when key material is malformed or not Ed25519."""

    kind = ErrorKind.UNSUPPORTED_KEY_FORMAT


class SigningError(BadgeTrustError):
    """Raised when a credential cannot be signed."""

    kind = ErrorKind.NO_KEY_AVAILABLE


class CredentialInputError(BadgeTrustError):
    """Raised when a verification request cannot be parsed."""

    kind = ErrorKind.INVALID_JSON
