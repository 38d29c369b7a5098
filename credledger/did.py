"""
DID directory: one immutable DID document per address.
"""

import dataclasses
from typing import Optional

from .clock import Clock
from .errors import AlreadyRegistered, NotFound
from .identity import normalize_address
from .records import DIDRecord
from .state import RegistryState


class DIDDirectory:
    """
    Binds an address to a DID document exactly once.

    There is no update or delete. Document rotation is a new registration,
    which is rejected.
    """

    def __init__(self, state: RegistryState, clock: Clock):
        self.state = state
        self.clock = clock

    def register_did(self, caller: str, document: str) -> DIDRecord:
        owner = normalize_address(caller)
        if owner in self.state.dids:
            raise AlreadyRegistered(
                "DID already registered",
                operation="register_did",
                identity=owner,
            )
        record = DIDRecord(
            owner=owner,
            document=document,
            created_at=self.clock.now(),
            active=True,
        )
        self.state.dids[owner] = record
        return record

    def get_did(self, address: str) -> DIDRecord:
        address = normalize_address(address)
        record = self.state.dids.get(address)
        if record is None:
            raise NotFound("DID not found", operation="get_did", identity=address)
        return record

    def has_did(self, address: str) -> bool:
        return normalize_address(address) in self.state.dids

    def set_did_active(self, caller: str, active: bool) -> Optional[DIDRecord]:
        """
        Toggle activation of the caller's own record.

        Returns the new record, or None when the flag already had that value.
        """
        owner = normalize_address(caller)
        current = self.state.dids.get(owner)
        if current is None:
            raise NotFound("DID not found", operation="set_did_active", identity=owner)
        if current.active == active:
            return None
        record = dataclasses.replace(current, active=active)
        self.state.dids[owner] = record
        return record
