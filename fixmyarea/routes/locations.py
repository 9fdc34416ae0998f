"""
FixMyArea - Location Routes
Public cascading lookups: states -> districts -> villages, returned as bare lists
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.database import get_db
from fixmyarea.services.location_service import LocationCache, LocationService, get_location_cache

router = APIRouter(prefix="/api/locations", tags=["Locations"])


def get_location_service(
    db: AsyncSession = Depends(get_db),
    cache: LocationCache = Depends(get_location_cache),
) -> LocationService:
    return LocationService(db, cache)


@router.get("/states")
async def get_states(service: LocationService = Depends(get_location_service)):
    return await service.states()


@router.get("/districts")
async def get_districts(
    state: Optional[str] = None,
    service: LocationService = Depends(get_location_service),
):
    return await service.districts(state)


@router.get("/villages")
async def get_villages(
    state: Optional[str] = None,
    district: Optional[str] = None,
    service: LocationService = Depends(get_location_service),
):
    return await service.villages(state, district)
