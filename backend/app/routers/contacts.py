"""Read-only contact views."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db.dependencies import get_db, get_identity_resolver
from app.identity import DataIntegrityError, IdentityResolver, StoreError
from app.schemas.common import ApiResponse
from app.schemas.contact import ContactRead, ContactStats, IdentityRead
from app.services.contacts import contact_stats, list_contacts
from app.services.identify import build_identity_read


router = APIRouter(prefix="/contacts")


@router.get("", response_model=ApiResponse[list[ContactRead]])
def get_contacts(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[list[ContactRead]]:
    """List live contacts; only exposed when debug endpoints are enabled."""

    if not settings.enable_debug_endpoints:
        raise HTTPException(status_code=404, detail="Not found")
    records = list_contacts(db, limit=limit, offset=offset)
    return ApiResponse(data=[ContactRead.model_validate(record) for record in records])


@router.get("/stats", response_model=ApiResponse[ContactStats])
def get_contact_stats(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[ContactStats]:
    """Summarize cluster sizes; only exposed when debug endpoints are enabled."""

    if not settings.enable_debug_endpoints:
        raise HTTPException(status_code=404, detail="Not found")
    return ApiResponse(data=contact_stats(db))


@router.get("/{contact_id}/identity", response_model=ApiResponse[IdentityRead])
def get_contact_identity(
    contact_id: int = Path(..., ge=1),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> ApiResponse[IdentityRead]:
    """Return the identity cluster a contact belongs to."""

    try:
        identity = resolver.lookup(contact_id)
    except DataIntegrityError as exc:
        raise HTTPException(status_code=500, detail="Contact data is inconsistent") from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail="Contact store unavailable") from exc
    if identity is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return ApiResponse(data=build_identity_read(identity))
