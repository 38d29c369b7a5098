"""
Off-chain credential metadata.

The ledger stores only a pointer (metadata URI) to a content-addressed
verifiable-credential document. It never checks the document against the
credential hash; verifiers that need that guarantee fetch the document and
call check_metadata_binding().
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx
import structlog

from .identity import (
    CredentialPayload,
    canonical_json,
    create_credential_hash,
    hash_to_hex,
    parse_hash,
)

logger = structlog.get_logger()

VC_CONTEXT = [
    "https://www.w3.org/2018/credentials/v1",
    "https://www.w3.org/2018/credentials/examples/v1",
]

URI_SCHEME = "ipfs://"


class MetadataError(Exception):
    """Metadata document could not be stored or fetched."""


class MetadataStore(Protocol):
    def put(self, document: dict[str, Any]) -> str:
        """Store a document, return its content address."""
        ...

    def get(self, uri: str) -> dict[str, Any]:
        ...


def _iso(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_verifiable_credential(
    payload: CredentialPayload,
    credential_type: str,
    issued_at: int,
    expires_at: int,
    issuer_name: str = "",
    issuer_did: Optional[str] = None,
    subject_did: Optional[str] = None,
    subject_name: str = "",
) -> dict[str, Any]:
    """
    Build the W3C verifiable-credential document for a payload.

    The hashed payload is embedded verbatim under "credentialPayload" so a
    verifier can recompute the on-ledger hash from the document alone.
    """
    credential_hash = create_credential_hash(payload)
    subject: dict[str, Any] = {"id": subject_did or payload.subject}
    if subject_name:
        subject["name"] = subject_name
    for key in ("degree", "major", "graduationDate", "institution"):
        value = payload.to_dict()[key]
        if value:
            subject[key] = value
    subject.update(payload.claims)

    issuer: dict[str, Any] = {"id": issuer_did or payload.issuer}
    if issuer_name:
        issuer["name"] = issuer_name
    if payload.institution:
        issuer["organization"] = payload.institution

    return {
        "@context": list(VC_CONTEXT),
        "id": f"urn:uuid:{uuid.uuid4()}",
        "type": ["VerifiableCredential", credential_type],
        "issuer": issuer,
        "issuanceDate": _iso(issued_at),
        "expirationDate": _iso(expires_at),
        "credentialSubject": subject,
        "credentialHash": hash_to_hex(credential_hash),
        "credentialPayload": payload.to_dict(),
    }


def check_metadata_binding(document: dict[str, Any], credential_hash: str | bytes) -> bool:
    """
    Re-hash the payload embedded in a metadata document and compare it to
    the on-ledger credential hash.
    """
    embedded = document.get("credentialPayload")
    if not isinstance(embedded, dict):
        return False
    return create_credential_hash(embedded) == parse_hash(credential_hash)


def content_address(document: dict[str, Any]) -> str:
    """sha-256 content address of the canonical document."""
    return f"{URI_SCHEME}{hashlib.sha256(canonical_json(document)).hexdigest()}"


class InMemoryMetadataStore:
    """
    Content-addressed store held in memory.

    Storing the same document twice yields the same URI.
    """

    def __init__(self) -> None:
        self._documents: dict[str, bytes] = {}

    def put(self, document: dict[str, Any]) -> str:
        uri = content_address(document)
        self._documents[uri] = canonical_json(document)
        return uri

    def get(self, uri: str) -> dict[str, Any]:
        if uri not in self._documents:
            raise MetadataError(f"Metadata {uri} not found")
        return json.loads(self._documents[uri].decode("utf-8"))

    def __contains__(self, uri: str) -> bool:
        return uri in self._documents


class GatewayMetadataFetcher:
    """
    Read-only access to metadata documents through an IPFS HTTP gateway.
    """

    def __init__(self, gateway_url: str, timeout: float = 30.0):
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout

    def resolve_url(self, uri: str) -> str:
        """Map ipfs://<cid>[/path] (or a bare CID) to a gateway URL."""
        if uri.startswith(("http://", "https://")):
            return uri
        cid = uri[len(URI_SCHEME):] if uri.startswith(URI_SCHEME) else uri
        return f"{self.gateway_url}/{cid}"

    def put(self, document: dict[str, Any]) -> str:
        raise MetadataError("Gateway store is read-only")

    def get(self, uri: str) -> dict[str, Any]:
        url = self.resolve_url(uri)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url)
                response.raise_for_status()
                document = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("metadata_fetch_failed", uri=uri, url=url, error=str(e))
            raise MetadataError(f"Failed to fetch metadata {uri}: {e}") from e

        if not isinstance(document, dict):
            raise MetadataError(f"Metadata {uri} is not a JSON object")
        return document
