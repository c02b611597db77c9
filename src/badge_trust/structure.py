"""
Open Badges credential structure validation.

Credentials come in two shapes, discriminated by ``type``: Open Badges 2.0
assertions and Open Badges 3.0 ``OpenBadgeCredential`` documents. Each
version has its own exhaustive rule set.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")


class CredentialVersion(Enum):
    """Open Badges specification version."""

    V2 = "v2.0"
    V3 = "v3.0"


@dataclass
class StructureResult:
    """Result of structure validation."""

    version: CredentialVersion
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fields_checked: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "fields_checked": list(self.fields_checked),
            "version": self.version.value,
        }


def is_valid_url(value: Any) -> bool:
    """Check that a value is an absolute URL (http(s) URLs need a host)."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parts = urlsplit(value)
        parts.port
    except ValueError:
        return False
    if not parts.scheme or not _SCHEME.match(parts.scheme):
        return False
    if parts.scheme.lower() in ("http", "https"):
        return bool(parts.hostname)
    return bool(parts.netloc or parts.path)


def detect_version(doc: dict[str, Any]) -> CredentialVersion:
    """An array ``type`` containing OpenBadgeCredential means v3, anything else v2."""
    doc_type = doc.get("type")
    if isinstance(doc_type, list) and "OpenBadgeCredential" in doc_type:
        return CredentialVersion.V3
    return CredentialVersion.V2


def _nested(doc: dict[str, Any], *path: str) -> Any:
    value: Any = doc
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _validate_v3(doc: dict[str, Any], result: StructureResult) -> None:
    result.fields_checked = ["@context", "type", "issuer.id", "credentialSubject"]

    context = doc.get("@context")
    if not isinstance(context, list) or not context:
        result.errors.append("Missing or invalid @context")
    doc_type = doc.get("type")
    if not isinstance(doc_type, list) or "OpenBadgeCredential" not in doc_type:
        result.errors.append("Invalid type - must include OpenBadgeCredential")
    if not _nested(doc, "issuer", "id"):
        result.errors.append("Missing issuer.id")
    if not _nested(doc, "credentialSubject", "achievement", "id"):
        result.errors.append("Missing credentialSubject.achievement.id")
    if not doc.get("validFrom"):
        result.warnings.append("Missing validFrom date")


def _validate_v2(doc: dict[str, Any], result: StructureResult) -> None:
    result.fields_checked = ["@context", "type", "badge", "recipient"]

    if not doc.get("@context"):
        result.errors.append("Missing @context")
    if doc.get("type") != "Assertion":
        result.errors.append("Invalid type - must be Assertion")
    if not doc.get("badge"):
        result.errors.append("Missing badge reference")
    if not doc.get("recipient"):
        result.errors.append("Missing recipient information")
    if not doc.get("issuedOn"):
        result.warnings.append("Missing issuedOn date")


_VALIDATORS: dict[CredentialVersion, Callable[[dict[str, Any], StructureResult], None]] = {
    CredentialVersion.V2: _validate_v2,
    CredentialVersion.V3: _validate_v3,
}


class CredentialStructureValidator:
    """Validates credentials against their version's required fields."""

    def validate(self, doc: Any) -> StructureResult:
        """Validate a credential document.

        Args:
            doc: The parsed credential.

        Returns:
            StructureResult; ``valid`` is True iff there are no errors.
            Warnings never affect validity.
        """
        if not isinstance(doc, dict):
            return StructureResult(
                version=CredentialVersion.V2,
                errors=["Credential must be a JSON object"],
            )

        version = detect_version(doc)
        result = StructureResult(version=version)
        _VALIDATORS[version](doc, result)

        if "id" in doc and not is_valid_url(doc["id"]):
            result.errors.append("Invalid badge ID URL")

        return result
