import asyncio

import pytest

from audit_api.crud import item_crud
from audit_api.services.snapshot import AuditSnapshot
from tests.builders import ALL_LOCATIONS
from tests.fakes import FakeContainer


@pytest.fixture
def items_container():
    return FakeContainer(partition_key="location")


@pytest.fixture
def locations_container():
    return FakeContainer(
        partition_key="id",
        documents=[location.model_dump(exclude={"etag", "ts"}) for location in ALL_LOCATIONS],
    )


@pytest.fixture
def questions_container():
    return FakeContainer(partition_key="id")


@pytest.fixture
def answers_container():
    return FakeContainer(partition_key="location_id")


@pytest.fixture
def seed(items_container, locations_container, questions_container, answers_container):
    """Store the given items and return a snapshot loaded from all containers."""

    def _seed(*items):
        async def _load():
            if items:
                await item_crud.upsert_items(items_container, list(items))
            return await AuditSnapshot.load(
                items_container, locations_container, questions_container, answers_container
            )

        return asyncio.run(_load())

    return _seed
