"""
Badge Trust - Open Badges issuer and credential verification.

Supports:
- Issuer domain policy tiers
- Well-known issuer verification (/.well-known/openbadges-issuer.json)
- Open Badges 2.0 and 3.0 structure validation
- Ed25519 signing and signature verification
"""

from badge_trust.config import Settings
from badge_trust.domain import DomainTier, DomainValidation
from badge_trust.engine import BadgeTrustEngine, VerificationResult
from badge_trust.errors import (
    BadgeTrustError,
    CredentialInputError,
    ErrorKind,
    FetchError,
    KeyFormatError,
    SigningError,
    VerificationError,
)
from badge_trust.issuer import IssuerCheck, IssuerVerificationOutcome
from badge_trust.signature import SignatureOutcome, SignatureResult, SignedCredential
from badge_trust.store import (
    FileKeyCache,
    FileTrustStore,
    MemoryKeyCache,
    MemoryTrustStore,
    TrustRecord,
    TrustStatus,
)
from badge_trust.trust import TrustLevel

__version__ = "0.1.0"
__all__ = [
    "BadgeTrustEngine",
    "BadgeTrustError",
    "CredentialInputError",
    "DomainTier",
    "DomainValidation",
    "ErrorKind",
    "FetchError",
    "FileKeyCache",
    "FileTrustStore",
    "IssuerCheck",
    "IssuerVerificationOutcome",
    "KeyFormatError",
    "MemoryKeyCache",
    "MemoryTrustStore",
    "Settings",
    "SignatureOutcome",
    "SignatureResult",
    "SignedCredential",
    "SigningError",
    "TrustLevel",
    "TrustRecord",
    "TrustStatus",
    "VerificationError",
    "VerificationResult",
]
