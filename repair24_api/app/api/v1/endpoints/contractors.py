"""
Contractor search endpoint for API v1.

Public: customers look for contractors before they register.
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.schemas.contractor import ContractorResult
from repair24_api.app.services.contractor_service import ContractorService


router = APIRouter()


@router.get("/search", response_model=List[ContractorResult])
async def search_contractors(
    services: List[str] = Query(..., description="Service types, repeat the parameter for several"),
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    limit: int = Query(20, ge=1, le=100),
    include_google: bool = Query(False, description="Merge nearby businesses from Google Places"),
) -> List[ContractorResult]:
    """Contractors offering any of ``services``, nearest first."""
    try:
        return await ContractorService.search(
            services, lat, lng, radius_km=radius_km, limit=limit, include_google=include_google
        )
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
