"""
Registry state, owned by CredentialRegistry and injected at construction.
"""

from dataclasses import dataclass, field

from .identity import normalize_address
from .records import Credential, DIDRecord, Issuer, RegistryEvent


@dataclass
class RegistryState:
    """
    Everything the registry knows.

    Maps are only ever updated by assigning whole (frozen) values, so a
    reader holding no lock sees either the old value or the new one.
    """

    owner: str
    issuers: dict[str, Issuer] = field(default_factory=dict)
    dids: dict[str, DIDRecord] = field(default_factory=dict)
    credentials: dict[bytes, Credential] = field(default_factory=dict)
    subject_index: dict[str, tuple[bytes, ...]] = field(default_factory=dict)
    events: list[RegistryEvent] = field(default_factory=list)

    @classmethod
    def genesis(cls, owner: str, created_at: int = 0) -> "RegistryState":
        """Fresh state with the owner seeded as an authorized issuer."""
        owner = normalize_address(owner)
        state = cls(owner=owner)
        state.issuers[owner] = Issuer(address=owner, authorized=True, updated_at=created_at)
        return state

    @property
    def last_sequence(self) -> int:
        return self.events[-1].sequence if self.events else 0
