import asyncio

import pytest

from audit_api.crud import item_crud
from audit_api.exceptions import PersistenceError, PreconditionFailedError, ValidationError
from audit_api.models.item import make_item_id
from audit_api.rules.status import AuditStatus
from tests.builders import make_item
from tests.fakes import FakeContainer


class TestDocumentMapping:
    def test_id_derives_from_the_key(self):
        document = item_crud.item_to_document(make_item("A1").model_copy(update={"id": "something-else"}))
        assert document["id"] == make_item_id("A1", "Store A")
        assert make_item_id("A1", "Store A") != make_item_id("A1", "Store B")

    def test_stored_status_is_not_trusted(self):
        item = item_crud.item_from_document(
            {"id": "x", "sku": "A1", "location": "Store A", "name": "Hammer", "category": "Tools",
             "system_quantity": 2, "physical_quantity": 2, "status": "pending", "_etag": '"e1"'}
        )
        assert item.status == AuditStatus.MATCHED
        assert item.etag == '"e1"'

    def test_missing_category_is_normalized(self):
        item = item_crud.item_from_document({"id": "x", "sku": "A1", "location": "Store A", "name": "Hammer"})
        assert item.category == item_crud.DEFAULT_CATEGORY
        assert item.status == AuditStatus.PENDING

    @pytest.mark.parametrize("field", ["sku", "location", "name"])
    def test_missing_required_field_is_rejected(self, field):
        document = {"id": "x", "sku": "A1", "location": "Store A", "name": "Hammer"}
        document[field] = None
        with pytest.raises(ValidationError, match=field):
            item_crud.item_from_document(document)


class TestListItems:
    def test_unreadable_documents_are_skipped(self):
        container = FakeContainer(
            partition_key="location",
            documents=[
                {"id": "1", "sku": "A1", "location": "Store A", "name": "Hammer", "category": "Tools"},
                {"id": "2", "sku": "A2", "location": "Store A", "name": None},
                {"id": "3", "sku": "A3", "location": "Store A", "name": "Saw", "system_quantity": "many"},
            ],
        )
        items = asyncio.run(item_crud.list_items(container))
        assert [item.sku for item in items] == ["A1"]

    def test_query_failure_becomes_persistence_error(self):
        container = FakeContainer(partition_key="location")
        container.fail("query_items", 503)
        with pytest.raises(PersistenceError, match="503"):
            asyncio.run(item_crud.list_items(container))


class TestUpsertItem:
    def test_etag_guards_the_write(self):
        container = FakeContainer(partition_key="location")
        stored = asyncio.run(item_crud.upsert_item(container, make_item("A1", system=1)))
        assert stored.etag is not None

        fresh = asyncio.run(item_crud.upsert_item(container, stored.with_system_quantity(2)))
        with pytest.raises(PreconditionFailedError):
            asyncio.run(item_crud.upsert_item(container, stored.with_system_quantity(3)))
        assert container.get(fresh.id)["system_quantity"] == 2

    def test_failure_is_wrapped(self):
        container = FakeContainer(partition_key="location")
        container.fail("upsert_item", 500)
        with pytest.raises(PersistenceError) as excinfo:
            asyncio.run(item_crud.upsert_item(container, make_item("A1")))
        assert not isinstance(excinfo.value, PreconditionFailedError)
        assert excinfo.value.original_exception is not None


class TestUpsertItems:
    def test_batches_per_location_and_chunk(self):
        container = FakeContainer(partition_key="location")
        items = [make_item(f"S{n}", location="Store A") for n in range(150)]
        items.append(make_item("S1", location="Store B"))
        stored = asyncio.run(item_crud.upsert_items(container, items))
        assert len(stored) == 151
        assert container.calls.count("execute_item_batch") == 3
        assert len(container.all()) == 151

    def test_resubmitting_does_not_duplicate(self):
        container = FakeContainer(partition_key="location")
        items = [make_item("A1"), make_item("A2")]
        asyncio.run(item_crud.upsert_items(container, items))
        asyncio.run(item_crud.upsert_items(container, items))
        assert len(container.all()) == 2

    def test_failed_location_is_reported(self):
        container = FakeContainer(partition_key="location")
        container.fail_partition("Store B", 500)
        items = [make_item("A1", location="Store A"), make_item("A1", location="Store B")]
        with pytest.raises(PersistenceError, match="Store B") as excinfo:
            asyncio.run(item_crud.upsert_items(container, items))
        assert "Committed location(s): Store A" in str(excinfo.value)

    def test_nothing_to_write(self):
        assert asyncio.run(item_crud.upsert_items(FakeContainer(partition_key="location"), [])) == []


def test_delete_all_items():
    container = FakeContainer(partition_key="location")
    asyncio.run(item_crud.upsert_items(container, [make_item("A1"), make_item("A1", location="Store B")]))
    assert asyncio.run(item_crud.delete_all_items(container)) == 2
    assert container.all() == []
