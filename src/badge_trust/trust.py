"""
Trust level classification.

Combines the structure, issuer and signature results into one of a fixed,
ordered set of trust levels.
"""

from __future__ import annotations

from enum import Enum

from badge_trust.issuer import IssuerCheck, IssuerResolution
from badge_trust.signature import SignatureResult
from badge_trust.structure import StructureResult


class TrustLevel(Enum):
    """Trust levels, lowest to highest."""

    INVALID = "invalid"
    STRUCTURE_ONLY = "structure_only"
    STRUCTURE_VALID_ISSUER_INVALID = "structure_valid_issuer_invalid"
    BASIC_VERIFIED = "basic_verified"
    REMOTE_VERIFIED = "remote_verified"
    FULLY_VERIFIED = "fully_verified"
    CRYPTOGRAPHICALLY_VERIFIED = "cryptographically_verified"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TrustLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, TrustLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, TrustLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, TrustLevel):
            return NotImplemented
        return self.rank >= other.rank


_ORDER = list(TrustLevel)


class TrustClassifier:
    """Composes verification sub-results into a trust level."""

    def classify(
        self,
        structure: StructureResult,
        issuer: IssuerCheck | None,
        signature: SignatureResult | None,
    ) -> TrustLevel:
        """Determine the trust level.

        Args:
            structure: Structure validation result.
            issuer: Issuer check, or None if no issuer was checked.
            signature: Signature check, or None if none was attempted.

        Returns:
            The trust level.
        """
        if not structure.valid:
            return TrustLevel.INVALID
        if issuer is None:
            return TrustLevel.STRUCTURE_ONLY
        if not issuer.valid:
            return TrustLevel.STRUCTURE_VALID_ISSUER_INVALID
        if signature is not None and signature.valid:
            return TrustLevel.CRYPTOGRAPHICALLY_VERIFIED
        if issuer.method is IssuerResolution.LOCALLY_VERIFIED:
            return TrustLevel.FULLY_VERIFIED
        if issuer.method is IssuerResolution.REMOTE_VERIFIED:
            return TrustLevel.REMOTE_VERIFIED
        return TrustLevel.BASIC_VERIFIED

    def overall_valid(
        self,
        structure: StructureResult,
        issuer: IssuerCheck | None,
        signature: SignatureResult | None,
    ) -> bool:
        """Structure valid, and every check that ran passed."""
        return (
            structure.valid
            and (issuer is None or issuer.valid)
            and (signature is None or signature.valid)
        )
