"""Well-known documents published by the relying party."""

from fastapi import APIRouter, Depends

from authcore.dependencies import get_related_origin_service
from authcore.services.related_origin_service import RelatedOriginService

router = APIRouter(prefix="/.well-known", tags=["well-known"])


@router.get("/webauthn")
def webauthn_related_origins(
    service: RelatedOriginService = Depends(get_related_origin_service),
) -> dict:
    """WebAuthn related origins: ``{"origins": [...]}`` of active origins."""
    return service.well_known_document()
