"""
Issuer allow-list, controlled by the registry owner.
"""

from typing import Optional

from .clock import Clock
from .errors import Unauthorized
from .identity import normalize_address
from .records import Issuer
from .state import RegistryState


class IssuerRegistry:
    """Owner-managed set of addresses permitted to issue credentials."""

    def __init__(self, state: RegistryState, clock: Clock):
        self.state = state
        self.clock = clock

    @property
    def owner(self) -> str:
        return self.state.owner

    def _require_owner(self, caller: str, operation: str) -> str:
        caller = normalize_address(caller)
        if caller != self.state.owner:
            raise Unauthorized(
                "only the registry owner can call this",
                operation=operation,
                identity=caller,
            )
        return caller

    def add_issuer(self, caller: str, address: str) -> Optional[Issuer]:
        """
        Authorize an address. Returns the new record, or None if it was
        already authorized.
        """
        self._require_owner(caller, "add_issuer")
        return self._set(normalize_address(address), True)

    def remove_issuer(self, caller: str, address: str) -> Optional[Issuer]:
        """
        Deauthorize an address. Returns the new record, or None if it was
        not authorized.
        """
        self._require_owner(caller, "remove_issuer")
        return self._set(normalize_address(address), False)

    def _set(self, address: str, authorized: bool) -> Optional[Issuer]:
        current = self.state.issuers.get(address)
        if (current is not None and current.authorized) == authorized:
            return None
        record = Issuer(address=address, authorized=authorized, updated_at=self.clock.now())
        self.state.issuers[address] = record
        return record

    def is_issuer(self, address: str) -> bool:
        record = self.state.issuers.get(normalize_address(address))
        return record is not None and record.authorized

    def list_issuers(self, include_removed: bool = False) -> list[Issuer]:
        return [
            record
            for record in list(self.state.issuers.values())
            if include_removed or record.authorized
        ]
