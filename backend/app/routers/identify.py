"""Identity reconciliation route."""

from fastapi import APIRouter, Depends, HTTPException

from app.config import Settings, get_settings
from app.db.dependencies import get_identity_resolver
from app.identity import DataIntegrityError, IdentityResolver, InvalidInputError, StoreError
from app.schemas.contact import IdentifyRequest, IdentifyResponse
from app.services.identify import build_identify_response, identify_contact


router = APIRouter()


@router.post("/identify", response_model=IdentifyResponse)
def identify(
    payload: IdentifyRequest,
    resolver: IdentityResolver = Depends(get_identity_resolver),
    settings: Settings = Depends(get_settings),
) -> IdentifyResponse:
    """Link an email/phone observation and return the consolidated contact."""

    try:
        identity = identify_contact(
            resolver,
            payload.email,
            payload.phone_number,
            max_attempts=settings.identify_max_attempts,
            backoff_seconds=settings.identify_retry_backoff_seconds,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DataIntegrityError as exc:
        raise HTTPException(status_code=500, detail="Contact data is inconsistent") from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail="Contact store unavailable") from exc
    return build_identify_response(identity)
