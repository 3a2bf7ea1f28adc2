import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

import config  # noqa: E402
from db.models import ALL_DOCUMENT_MODELS  # noqa: E402
from db.unit_of_work import unit_of_work_factory  # noqa: E402
from route_templates.services.route_service import RouteService  # noqa: E402
from trips.services.trip_lifecycle_service import TripLifecycleService  # noqa: E402


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # mongomock has no sessions; never probe a real server from tests
    monkeypatch.setattr(config, "MONGODB_TRANSACTIONS", "off")


@pytest.fixture
async def beanie_db():
    client = AsyncMongoMockClient()
    database = client["test_db"]
    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
    return database


@pytest.fixture
def uow_factory():
    return unit_of_work_factory(use_transactions=False)


@pytest.fixture
def trip_service(uow_factory) -> TripLifecycleService:
    return TripLifecycleService(uow_factory)


@pytest.fixture
def route_service(uow_factory) -> RouteService:
    return RouteService(uow_factory)

