"""
Hash and identity helpers.

Credential hashes are keccak-256 digests (32 bytes) over a canonical JSON
serialization of the credential payload. Identities are EVM addresses,
always handled in EIP-55 checksum form.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DID_METHOD = "ethr"


@dataclass(frozen=True)
class CredentialPayload:
    """Semantic fields of a credential that feed its hash."""

    subject: str
    issuer: str
    timestamp: int  # issuance time or nonce, makes re-issuance unique
    degree: str = ""
    major: str = ""
    graduation_date: str = ""
    institution: str = ""
    claims: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "subject": self.subject,
            "issuer": self.issuer,
            "timestamp": self.timestamp,
            "degree": self.degree,
            "major": self.major,
            "graduationDate": self.graduation_date,
            "institution": self.institution,
        }
        if self.claims:
            obj["claims"] = dict(self.claims)
        return obj


def canonical_json(obj: Any) -> bytes:
    """Serialize with sorted keys and compact separators (stable across runs)."""
    return json.dumps(
        obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")


def create_credential_hash(payload: Union[CredentialPayload, Mapping[str, Any]]) -> bytes:
    """
    Compute the credential hash for a payload.

    Args:
        payload: CredentialPayload or a plain mapping of the same fields

    Returns:
        32-byte keccak-256 digest
    """
    if isinstance(payload, CredentialPayload):
        payload = payload.to_dict()
    return bytes(Web3.keccak(canonical_json(dict(payload))))


def new_nonce() -> int:
    """Random 64-bit nonce for CredentialPayload.timestamp."""
    return secrets.randbits(64)


def parse_hash(value: Union[str, bytes]) -> bytes:
    """
    Parse a credential hash given as 0x-hex or raw bytes.

    Raises:
        ValueError: if the value is not exactly 32 bytes
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value.strip()
        if text.startswith(("0x", "0X")):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Invalid credential hash: {value!r}") from e
    if len(raw) != 32:
        raise ValueError(f"Credential hash must be 32 bytes, got {len(raw)}")
    return raw


def hash_to_hex(value: bytes) -> str:
    return f"0x{value.hex()}"


def normalize_address(address: str) -> str:
    """
    Return the EIP-55 checksum form of an address.

    Raises:
        ValueError: if the string is not a 20-byte hex address
    """
    candidate = address.strip() if isinstance(address, str) else address
    if not isinstance(candidate, str) or not Web3.is_address(candidate):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(candidate)


def is_address(address: str) -> bool:
    return isinstance(address, str) and Web3.is_address(address.strip())


def format_did(address: str, method: str = DID_METHOD) -> str:
    """Render an address as a DID, e.g. did:ethr:0xAbC..."""
    return f"did:{method}:{normalize_address(address)}"


def parse_did(did: str) -> str:
    """
    Extract the checksum address from a did:<method>:<address> string.

    Network-qualified forms (did:ethr:<network>:<address>) are accepted.
    """
    parts = did.strip().split(":")
    if len(parts) < 3 or parts[0] != "did":
        raise ValueError(f"Not a DID: {did!r}")
    return normalize_address(parts[-1])
