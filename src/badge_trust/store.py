"""
Trust store and public key cache.

Both stores are keyed by lowercase domain and come with an in-memory
backend and a file backend. The file backends keep the on-disk layout of
the badge service: one ``verified-issuers.json`` map and one
``{domain}.pem`` file per cached key.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from badge_trust.errors import BadgeTrustError, ErrorKind

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_key(domain: str) -> str:
    return domain.strip().lower()


class TrustStatus(Enum):
    """Verification status of a stored issuer."""

    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class TrustRecord:
    """Persistent verification record for one issuer domain."""

    domain: str
    id: str
    status: TrustStatus
    display_name: str
    type: str
    url: str | None = None
    email: str | None = None
    description: str | None = None
    public_keys: list[Any] = field(default_factory=list)
    well_known_url: str | None = None
    last_verified: str | None = None
    last_verification_attempt: str | None = None
    last_error: str | None = None
    verification_method: str = "well-known"
    raw_data: dict[str, Any] | None = None
    last_updated: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.status is TrustStatus.VERIFIED

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used on disk and over the wire."""
        data: dict[str, Any] = {
            "id": self.id,
            "domain": self.domain,
            "status": self.status.value,
            "displayName": self.display_name,
            "type": self.type,
            "url": self.url,
            "email": self.email,
            "description": self.description,
            "publicKeys": list(self.public_keys),
            "wellKnownUrl": self.well_known_url,
            "lastVerified": self.last_verified,
            "lastVerificationAttempt": self.last_verification_attempt,
            "lastError": self.last_error,
            "verificationMethod": self.verification_method,
            "rawData": self.raw_data,
            "lastUpdated": self.last_updated,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrustRecord:
        """Create a TrustRecord from its serialized form."""
        return cls(
            domain=data.get("domain", ""),
            id=data.get("id", ""),
            status=TrustStatus(data.get("status", TrustStatus.FAILED.value)),
            display_name=data.get("displayName", ""),
            type=data.get("type", ""),
            url=data.get("url"),
            email=data.get("email"),
            description=data.get("description"),
            public_keys=list(data.get("publicKeys") or []),
            well_known_url=data.get("wellKnownUrl"),
            last_verified=data.get("lastVerified"),
            last_verification_attempt=data.get("lastVerificationAttempt"),
            last_error=data.get("lastError"),
            verification_method=data.get("verificationMethod", "well-known"),
            raw_data=data.get("rawData"),
            last_updated=data.get("lastUpdated"),
        )


class TrustStoreError(BadgeTrustError):
    """Raised when the persisted trust map cannot be read."""

    kind = ErrorKind.INVALID_JSON


@dataclass
class _DomainLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class TrustStore(ABC):
    """Abstract domain -> TrustRecord repository.

    ``update`` performs a read-modify-write under a per-domain lock, so
    concurrent re-verifications of the same domain never lose an update
    while different domains proceed independently.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _DomainLock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def get(self, domain: str) -> TrustRecord | None:
        """Return the record for a domain, or None."""

    @abstractmethod
    def put(self, domain: str, record: TrustRecord) -> TrustRecord:
        """Store a record, overwriting any previous one."""

    @abstractmethod
    def list(self) -> list[TrustRecord]:
        """Return every stored record."""

    @contextmanager
    def _domain_lock(self, domain: str) -> Iterator[None]:
        # Entries live only while some thread holds or waits on them
        with self._locks_guard:
            entry = self._locks.get(domain)
            if entry is None:
                entry = self._locks[domain] = _DomainLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[domain]

    def update(
        self,
        domain: str,
        mutate: Callable[[TrustRecord | None], TrustRecord | None],
    ) -> TrustRecord | None:
        """Atomically transform the record for a domain.

        Args:
            domain: The domain key.
            mutate: Receives the current record (or None) and returns the
                record to store, or None to leave the store untouched.

        Returns:
            The stored record, or the unchanged current value when
            ``mutate`` returned None.
        """
        key = normalize_key(domain)
        with self._domain_lock(key):
            current = self.get(key)
            updated = mutate(current)
            if updated is None:
                return current
            return self.put(key, updated)


class MemoryTrustStore(TrustStore):
    """In-memory trust store for tests and single-process use."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, domain: str) -> TrustRecord | None:
        with self._lock:
            data = self._records.get(normalize_key(domain))
        return TrustRecord.from_dict(data) if data is not None else None

    def put(self, domain: str, record: TrustRecord) -> TrustRecord:
        record.last_updated = utc_now()
        with self._lock:
            self._records[normalize_key(domain)] = record.to_dict()
        return record

    def list(self) -> list[TrustRecord]:
        with self._lock:
            items = list(self._records.values())
        return [TrustRecord.from_dict(data) for data in items]


class FileTrustStore(TrustStore):
    """Trust store persisted as a single JSON map on disk."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._file_lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading trust store {self.path}: {e}")
            raise TrustStoreError(f"Cannot read trust store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise TrustStoreError(f"Trust store {self.path} is not a JSON object")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=".verified-issuers-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, domain: str) -> TrustRecord | None:
        with self._file_lock:
            data = self._load().get(normalize_key(domain))
        return TrustRecord.from_dict(data) if data else None

    def put(self, domain: str, record: TrustRecord) -> TrustRecord:
        record.last_updated = utc_now()
        with self._file_lock:
            data = self._load()
            data[normalize_key(domain)] = record.to_dict()
            self._save(data)
        return record

    def list(self) -> list[TrustRecord]:
        with self._file_lock:
            data = self._load()
        return [TrustRecord.from_dict(item) for item in data.values()]


class KeyCache(ABC):
    """Abstract domain -> PEM public key cache."""

    @abstractmethod
    def get(self, domain: str) -> str | None:
        """Return the cached PEM for a domain, or None."""

    @abstractmethod
    def put(self, domain: str, pem: str) -> None:
        """Cache a PEM for a domain, overwriting any previous entry."""


class MemoryKeyCache(KeyCache):
    """In-memory key cache."""

    def __init__(self) -> None:
        self._keys: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, domain: str) -> str | None:
        with self._lock:
            return self._keys.get(normalize_key(domain))

    def put(self, domain: str, pem: str) -> None:
        with self._lock:
            self._keys[normalize_key(domain)] = pem


class FileKeyCache(KeyCache):
    """Key cache storing one ``{domain}.pem`` file per domain."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path_for(self, domain: str) -> Path:
        name = normalize_key(domain).replace("/", "_").replace("\\", "_")
        return self.directory / f"{name}.pem"

    def get(self, domain: str) -> str | None:
        path = self._path_for(domain)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, domain: str, pem: str) -> None:
        path = self._path_for(domain)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(pem, encoding="utf-8")
        logger.info(f"Cached public key for domain: {normalize_key(domain)}")
