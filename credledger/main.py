"""
credledger API - thin HTTP wrapper around the credential registry.

Provides REST endpoints for:
- Issuer allow-list (POST /issuers/add, /issuers/remove; GET /issuers)
- DID directory (POST /dids/register, /dids/status; GET /dids/{address})
- Credential issuance and revocation (POST /credentials/issue, /credentials/revoke)
- Verification (GET /credentials/{hash}/verify)
- Listings (GET /subjects/{address}/credentials, /issuers/{address}/credentials)
- Health checks (GET /health)

Mutating endpoints take signed requests; see credledger.signing.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .auth import authenticate_operation, verify_api_token
from .config import Settings, get_settings
from .db import CredentialIndex, IndexedCredential
from .errors import NotFound, RegistryError
from .identity import (
    CredentialPayload,
    create_credential_hash,
    format_did,
    hash_to_hex,
    normalize_address,
)
from .models import (
    CredentialModel,
    CredentialPayloadModel,
    CredentialResponse,
    DIDResponse,
    HashResponse,
    HealthResponse,
    IndexedCredentialsResponse,
    IssueCredentialRequest,
    IssuerChangeRequest,
    IssuerListResponse,
    IssuerResponse,
    IssuerStatusResponse,
    RegisterDIDRequest,
    RevokeCredentialRequest,
    SetDIDStatusRequest,
    SubjectCredentialsResponse,
    VerifyResponse,
)
from .records import Credential, DIDRecord
from .registry import CredentialRegistry
from .signing import ReplayGuard

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


# Global state (initialized at startup)
_registry: Optional[CredentialRegistry] = None
_index: Optional[CredentialIndex] = None
_replay_guard: Optional[ReplayGuard] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    global _registry, _index, _replay_guard

    settings = get_settings()
    _replay_guard = ReplayGuard(settings.signature_ttl_seconds)

    if settings.registry_owner:
        _registry = CredentialRegistry.create(
            settings.registry_owner,
            verification_mode=settings.verification_mode,
        )
    else:
        logger.warning("registry_not_configured", reason="REGISTRY_OWNER not set")

    if _registry and settings.index_database_url:
        _index = CredentialIndex(settings.index_database_url)
        _index.follow(_registry)

    logger.info(
        "API started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        owner=_registry.owner if _registry else None,
        index=_index is not None,
    )

    yield

    if _index:
        _index.close()
    _registry = None
    _index = None
    _replay_guard = None

    logger.info("API stopped")


# Create FastAPI app
app = FastAPI(
    title="credledger API",
    description="Credential registry, DID directory and verification",
    version=__version__,
    lifespan=lifespan,
)

_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_registry() -> CredentialRegistry:
    if not _registry:
        raise HTTPException(status_code=503, detail="Registry not initialized")
    return _registry


def _credential_model(record: Credential) -> CredentialModel:
    return CredentialModel(
        credential_hash=record.hash_hex,
        issuer=record.issuer,
        subject=record.subject,
        credential_type=record.credential_type,
        issued_at=record.issued_at,
        expires_at=record.expires_at,
        metadata_uri=record.metadata_uri,
        revoked=record.revoked,
        revoked_at=record.revoked_at,
    )


def _indexed_model(row: IndexedCredential) -> CredentialModel:
    return CredentialModel(
        credential_hash=row.credential_hash,
        issuer=row.issuer,
        subject=row.subject,
        credential_type=row.credential_type,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        metadata_uri=row.metadata_uri,
        revoked=row.revoked,
        revoked_at=row.revoked_at,
    )


def _did_response(record: DIDRecord) -> DIDResponse:
    return DIDResponse(
        success=True,
        owner=record.owner,
        did=format_did(record.owner),
        document=record.document,
        created_at=record.created_at,
        active=record.active,
    )


def _address_or_422(address: str) -> str:
    try:
        return normalize_address(address)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Service status and ledger/index positions."""
    if not _registry:
        return HealthResponse(status="degraded", version=__version__)

    return HealthResponse(
        status="ok",
        version=__version__,
        owner=_registry.owner,
        verification_mode=_registry.verification_mode.value,
        credentials=len(_registry.state.credentials),
        last_sequence=_registry.state.last_sequence,
        index_sequence=_index.last_sequence() if _index else None,
    )


# ============================================================================
# Issuer Allow-list
# ============================================================================


@app.get("/issuers", response_model=IssuerListResponse)
def list_issuers() -> IssuerListResponse:
    registry = _require_registry()
    return IssuerListResponse(
        owner=registry.owner,
        issuers=[record.address for record in registry.list_issuers()],
    )


@app.get("/issuers/{address}", response_model=IssuerStatusResponse)
def issuer_status(address: str) -> IssuerStatusResponse:
    registry = _require_registry()
    address = _address_or_422(address)
    return IssuerStatusResponse(address=address, is_issuer=registry.is_issuer(address))


def _change_issuer(
    operation: str, request: IssuerChangeRequest, settings: Settings
) -> IssuerResponse:
    registry = _require_registry()
    caller = authenticate_operation(operation, request, registry.owner, settings, _replay_guard)

    try:
        if operation == "add_issuer":
            record = registry.add_issuer(caller, request.address)
        else:
            record = registry.remove_issuer(caller, request.address)
        address = normalize_address(request.address)
        return IssuerResponse(
            success=True,
            address=address,
            authorized=registry.is_issuer(address),
            changed=record is not None,
        )
    except RegistryError as e:
        return IssuerResponse(success=False, address=request.address, error=str(e), error_code=e.code)
    except ValueError as e:
        return IssuerResponse(success=False, address=request.address, error=str(e), error_code="invalid_request")


@app.post(
    "/issuers/add",
    response_model=IssuerResponse,
    dependencies=[Depends(verify_api_token)],
)
def add_issuer(
    request: IssuerChangeRequest,
    settings: Settings = Depends(get_settings),
) -> IssuerResponse:
    """Authorize an issuer (registry owner only)."""
    return _change_issuer("add_issuer", request, settings)


@app.post(
    "/issuers/remove",
    response_model=IssuerResponse,
    dependencies=[Depends(verify_api_token)],
)
def remove_issuer(
    request: IssuerChangeRequest,
    settings: Settings = Depends(get_settings),
) -> IssuerResponse:
    """Deauthorize an issuer (registry owner only). Past credentials are untouched."""
    return _change_issuer("remove_issuer", request, settings)


# ============================================================================
# DID Directory
# ============================================================================


@app.post(
    "/dids/register",
    response_model=DIDResponse,
    dependencies=[Depends(verify_api_token)],
)
def register_did(
    request: RegisterDIDRequest,
    settings: Settings = Depends(get_settings),
) -> DIDResponse:
    """Bind the caller's address to a DID document, once."""
    registry = _require_registry()
    caller = authenticate_operation("register_did", request, registry.owner, settings, _replay_guard)

    try:
        record = registry.register_did(caller, request.document)
    except RegistryError as e:
        return DIDResponse(success=False, owner=caller, error=str(e), error_code=e.code)

    return _did_response(record)


@app.post(
    "/dids/status",
    response_model=DIDResponse,
    dependencies=[Depends(verify_api_token)],
)
def set_did_status(
    request: SetDIDStatusRequest,
    settings: Settings = Depends(get_settings),
) -> DIDResponse:
    """Activate or deactivate the caller's own DID."""
    registry = _require_registry()
    caller = authenticate_operation("set_did_active", request, registry.owner, settings, _replay_guard)

    try:
        registry.set_did_active(caller, request.active)
        record = registry.get_did(caller)
    except RegistryError as e:
        return DIDResponse(success=False, owner=caller, error=str(e), error_code=e.code)

    return _did_response(record)


@app.get("/dids/{address}", response_model=DIDResponse)
def get_did(address: str) -> DIDResponse:
    registry = _require_registry()
    try:
        record = registry.get_did(_address_or_422(address))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _did_response(record)


# ============================================================================
# Credentials
# ============================================================================


@app.post("/credentials/hash", response_model=HashResponse)
def compute_credential_hash(payload: CredentialPayloadModel) -> HashResponse:
    """Hash a credential payload the same way issuers do."""
    digest = create_credential_hash(CredentialPayload(**payload.model_dump()))
    return HashResponse(credential_hash=hash_to_hex(digest))


@app.post(
    "/credentials/issue",
    response_model=CredentialResponse,
    dependencies=[Depends(verify_api_token)],
)
def issue_credential(
    request: IssueCredentialRequest,
    settings: Settings = Depends(get_settings),
) -> CredentialResponse:
    """Record a credential; the caller must be an authorized issuer."""
    registry = _require_registry()
    caller = authenticate_operation("issue_credential", request, registry.owner, settings, _replay_guard)

    try:
        record = registry.issue_credential(
            caller,
            request.credential_hash,
            request.subject,
            request.credential_type,
            request.expires_at,
            request.metadata_uri,
        )
    except RegistryError as e:
        return CredentialResponse(success=False, error=str(e), error_code=e.code)
    except ValueError as e:
        return CredentialResponse(success=False, error=str(e), error_code="invalid_request")

    return CredentialResponse(success=True, credential=_credential_model(record))


@app.post(
    "/credentials/revoke",
    response_model=CredentialResponse,
    dependencies=[Depends(verify_api_token)],
)
def revoke_credential(
    request: RevokeCredentialRequest,
    settings: Settings = Depends(get_settings),
) -> CredentialResponse:
    """Revoke a credential; only its original issuer may do this."""
    registry = _require_registry()
    caller = authenticate_operation("revoke_credential", request, registry.owner, settings, _replay_guard)

    try:
        record = registry.revoke_credential(caller, request.credential_hash)
    except RegistryError as e:
        return CredentialResponse(success=False, error=str(e), error_code=e.code)
    except ValueError as e:
        return CredentialResponse(success=False, error=str(e), error_code="invalid_request")

    return CredentialResponse(success=True, credential=_credential_model(record))


@app.get("/credentials/{credential_hash}/verify", response_model=VerifyResponse)
def verify_credential(credential_hash: str) -> VerifyResponse:
    """Validity verdict. Unknown hashes are invalid, not errors."""
    registry = _require_registry()
    try:
        result = registry.verify_credential(credential_hash)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return VerifyResponse(**result.to_dict(), status=result.status.value)


@app.get("/credentials/{credential_hash}", response_model=CredentialModel)
def get_credential(credential_hash: str) -> CredentialModel:
    registry = _require_registry()
    try:
        record = registry.get_credential(credential_hash)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return _credential_model(record)


@app.get("/subjects/{address}/credentials", response_model=SubjectCredentialsResponse)
def credentials_by_subject(address: str) -> SubjectCredentialsResponse:
    """Credential hashes for a subject, in issuance order, from the ledger."""
    registry = _require_registry()
    subject = _address_or_422(address)
    hashes = registry.get_credentials_by_subject(subject)
    return SubjectCredentialsResponse(
        subject=subject,
        credential_hashes=[hash_to_hex(h) for h in hashes],
        count=len(hashes),
    )


@app.get("/issuers/{address}/credentials", response_model=IndexedCredentialsResponse)
def credentials_by_issuer(
    address: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> IndexedCredentialsResponse:
    """Paginated credentials from an issuer, served by the read index."""
    if not _index:
        raise HTTPException(status_code=503, detail="Index not configured")
    issuer = _address_or_422(address)
    rows = _index.credentials_by_issuer(issuer, limit=limit, offset=offset)
    return IndexedCredentialsResponse(
        issuer=issuer,
        total=_index.count_by_issuer(issuer),
        limit=limit,
        offset=offset,
        items=[_indexed_model(row) for row in rows],
    )


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "credledger.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
