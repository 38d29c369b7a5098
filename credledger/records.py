"""
Ledger records.

All records are frozen; a write replaces a record, it never mutates one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .identity import hash_to_hex


@dataclass(frozen=True)
class Issuer:
    """An address on the issuer allow-list."""

    address: str
    authorized: bool
    updated_at: int


@dataclass(frozen=True)
class DIDRecord:
    """DID document bound to its owner's address."""

    owner: str
    document: str
    created_at: int
    active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "document": self.document,
            "createdAt": self.created_at,
            "active": self.active,
        }


@dataclass(frozen=True)
class Credential:
    """Issuance record keyed by credential hash."""

    hash: bytes
    issuer: str
    subject: str
    credential_type: str
    issued_at: int
    expires_at: int
    metadata_uri: str
    revoked: bool = False
    revoked_at: Optional[int] = None

    def __post_init__(self) -> None:
        if self.revoked != (self.revoked_at is not None):
            raise ValueError("revoked_at must be set exactly when revoked is true")

    @property
    def hash_hex(self) -> str:
        return hash_to_hex(self.hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash_hex,
            "issuer": self.issuer,
            "subject": self.subject,
            "credentialType": self.credential_type,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
            "metadataURI": self.metadata_uri,
            "revoked": self.revoked,
            "revokedAt": self.revoked_at,
        }


class EventKind(str, Enum):
    ISSUER_ADDED = "issuer_added"
    ISSUER_REMOVED = "issuer_removed"
    DID_REGISTERED = "did_registered"
    DID_STATUS_CHANGED = "did_status_changed"
    CREDENTIAL_ISSUED = "credential_issued"
    CREDENTIAL_REVOKED = "credential_revoked"


@dataclass(frozen=True)
class RegistryEvent:
    """One committed write, in global write order."""

    sequence: int
    kind: EventKind
    timestamp: int
    caller: str
    record: Any = field(default=None)  # Issuer, DIDRecord or Credential after the write
