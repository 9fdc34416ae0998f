"""
Cascading location lookups and their cache
"""
import pytest
from httpx import AsyncClient

from fixmyarea.exceptions import ValidationError
from fixmyarea.models.db_models import LocationCatalog
from fixmyarea.services.location_service import LocationCache, LocationService

CATALOG = [
    ("Kerala", "Ernakulam", "Aluva"),
    ("Kerala", "Ernakulam", "Kalamassery"),
    ("Kerala", "Thrissur", "Chalakudy"),
    ("Karnataka", "Mysuru", "Hunsur"),
]


@pytest.fixture
async def catalog(db_session):
    db_session.add_all(LocationCatalog(state=s, district=d, village=v) for s, d, v in CATALOG)
    await db_session.commit()


@pytest.fixture
def cache(clock) -> LocationCache:
    return LocationCache(clock=clock)


@pytest.fixture
def service(db_session, cache) -> LocationService:
    return LocationService(db_session, cache)


async def test_cascading_lookups(client: AsyncClient, catalog):
    states = await client.get("/api/locations/states")
    districts = await client.get("/api/locations/districts", params={"state": "Kerala"})
    villages = await client.get("/api/locations/villages", params={"state": "Kerala", "district": "Ernakulam"})

    assert states.json() == ["Karnataka", "Kerala"]
    assert districts.json() == ["Ernakulam", "Thrissur"]
    assert villages.json() == ["Aluva", "Kalamassery"]


async def test_missing_parameters(client: AsyncClient):
    response = await client.get("/api/locations/districts")
    assert response.status_code == 400
    assert response.json()["message"] == "State parameter is required"

    response = await client.get("/api/locations/villages", params={"state": "Kerala"})
    assert response.status_code == 400
    assert response.json()["message"] == "State and district parameters are required"


async def test_unknown_state_is_empty(service, catalog):
    assert await service.districts("Goa") == []


async def test_lookups_are_cached(service, catalog, db_session):
    assert await service.states() == ["Karnataka", "Kerala"]

    db_session.add(LocationCatalog(state="Tamil Nadu", district="Coimbatore", village="Pollachi"))
    await db_session.commit()

    assert await service.states() == ["Karnataka", "Kerala"]


async def test_invalidate_reloads_catalog(service, cache, catalog, db_session):
    await service.states()
    db_session.add(LocationCatalog(state="Tamil Nadu", district="Coimbatore", village="Pollachi"))
    await db_session.commit()

    await cache.invalidate()

    assert await service.states() == ["Karnataka", "Kerala", "Tamil Nadu"]


async def test_memory_cache_expires(cache, clock):
    await cache.set("states", ["Kerala"])

    clock.advance(seconds=cache.ttl - 1)
    assert await cache.get("states") == ["Kerala"]

    clock.advance(seconds=1)
    assert await cache.get("states") is None


async def test_service_rejects_blank_state(service):
    with pytest.raises(ValidationError):
        await service.villages("Kerala", "")
