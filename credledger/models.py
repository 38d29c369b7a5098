"""
Pydantic models for API requests and responses.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

SIGNATURE_FIELDS = {"caller", "signature", "signed_at", "nonce"}


class SignedRequest(BaseModel):
    """Fields every mutating request carries to prove its caller."""

    caller: str = Field(..., description="Caller EVM address (0x...)")
    signature: str = Field(..., description="personal_sign signature over the operation message")
    signed_at: int = Field(..., description="Unix time the message was signed")
    nonce: str = Field(..., min_length=8, description="Single-use random string")

    def params(self) -> dict[str, Any]:
        """Operation parameters covered by the signature."""
        return self.model_dump(exclude=SIGNATURE_FIELDS)


# ============================================================================
# Issuers
# ============================================================================

class IssuerChangeRequest(SignedRequest):
    """Owner request to add or remove an issuer."""

    address: str = Field(..., description="Issuer EVM address (0x...)")


class IssuerResponse(BaseModel):
    success: bool = Field(..., description="Whether the operation succeeded")
    address: Optional[str] = Field(None, description="Issuer address (checksum)")
    authorized: Optional[bool] = Field(None, description="Authorization after the call")
    changed: bool = Field(False, description="False when the call was a no-op")
    error: Optional[str] = Field(None, description="Error message if failed")
    error_code: Optional[str] = Field(None, description="Stable error code if failed")


class IssuerStatusResponse(BaseModel):
    address: str
    is_issuer: bool


class IssuerListResponse(BaseModel):
    owner: str
    issuers: list[str]


# ============================================================================
# DIDs
# ============================================================================

class RegisterDIDRequest(SignedRequest):
    document: str = Field(..., description="DID document (opaque, usually JSON)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "caller": "0x1234567890abcdef1234567890abcdef12345678",
                    "signature": "0x...",
                    "signed_at": 1700000000,
                    "nonce": "Vb2x1f0m3Q9sX1aP",
                    "document": '{"@context":"https://www.w3.org/ns/did/v1"}',
                }
            ]
        }
    }


class SetDIDStatusRequest(SignedRequest):
    active: bool = Field(..., description="New activation flag")


class DIDResponse(BaseModel):
    success: bool = Field(..., description="Whether the operation succeeded")
    owner: Optional[str] = None
    did: Optional[str] = Field(None, description="did:ethr:<owner>")
    document: Optional[str] = None
    created_at: Optional[int] = None
    active: Optional[bool] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


# ============================================================================
# Credentials
# ============================================================================

class CredentialPayloadModel(BaseModel):
    """Credential fields that feed the credential hash."""

    subject: str
    issuer: str
    timestamp: int = Field(..., description="Issuance time or nonce")
    degree: str = ""
    major: str = ""
    graduation_date: str = ""
    institution: str = ""
    claims: dict[str, Any] = Field(default_factory=dict)


class HashResponse(BaseModel):
    credential_hash: str = Field(..., description="keccak-256 of the canonical payload (0x...)")


class IssueCredentialRequest(SignedRequest):
    credential_hash: str = Field(..., description="32-byte credential hash (0x...)")
    subject: str = Field(..., description="Subject EVM address (0x...)")
    credential_type: str = Field(..., description="e.g. Bachelor's Degree")
    expires_at: int = Field(..., gt=0, description="Expiry (unix seconds)")
    metadata_uri: str = Field("", description="Content address of the VC document")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "caller": "0x1234567890abcdef1234567890abcdef12345678",
                    "signature": "0x...",
                    "signed_at": 1700000000,
                    "nonce": "Vb2x1f0m3Q9sX1aP",
                    "credential_hash": "0x" + "ab" * 32,
                    "subject": "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
                    "credential_type": "Bachelor's Degree",
                    "expires_at": 1731536000,
                    "metadata_uri": "ipfs://QmTest123",
                }
            ]
        }
    }


class RevokeCredentialRequest(SignedRequest):
    credential_hash: str = Field(..., description="32-byte credential hash (0x...)")


class CredentialModel(BaseModel):
    credential_hash: str
    issuer: str
    subject: str
    credential_type: str
    issued_at: int
    expires_at: int
    metadata_uri: str
    revoked: bool
    revoked_at: Optional[int] = None


class CredentialResponse(BaseModel):
    success: bool = Field(..., description="Whether the operation succeeded")
    credential: Optional[CredentialModel] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class VerifyResponse(BaseModel):
    """Verification verdict. Field names are the wire schema verifiers rely on."""

    isValid: bool
    issuer: str
    subject: str
    issuedAt: int
    expiresAt: int
    metadataURI: str
    status: str = Field(..., description="valid, not_found, revoked, expired or issuer_unauthorized")


class SubjectCredentialsResponse(BaseModel):
    subject: str
    credential_hashes: list[str] = Field(..., description="Hashes in issuance order")
    count: int


class IndexedCredentialsResponse(BaseModel):
    issuer: str
    total: int
    limit: int
    offset: int
    items: list[CredentialModel]


# ============================================================================
# Health Check
# ============================================================================

class HealthResponse(BaseModel):
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    owner: Optional[str] = Field(None, description="Registry owner")
    verification_mode: Optional[str] = None
    credentials: int = Field(0, description="Credentials in the ledger")
    last_sequence: int = Field(0, description="Last committed event")
    index_sequence: Optional[int] = Field(None, description="Last event mirrored into the index")
