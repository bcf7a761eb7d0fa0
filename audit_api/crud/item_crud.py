import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from azure.core import MatchConditions
from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from pydantic import ValidationError as PydanticValidationError

from audit_api.crud.common import (
    Document,
    batch_result_body,
    chunked,
    select_all,
    to_persistence_error,
)
from audit_api.exceptions import ApplicationError, PersistenceError, ValidationError
from audit_api.logging_config import get_child_logger, mark_span_error, tracer
from audit_api.models.item import AuditItem, make_item_id

# Create a child logger for this module
logger = get_child_logger("crud.item")

# Rows written before category became mandatory
DEFAULT_CATEGORY = "Uncategorized"

_REQUIRED_DOCUMENT_FIELDS = ("sku", "location", "name")


def item_to_document(item: AuditItem) -> Document:
    """
    Map a reconciled record to the stored document shape.

    The id is always re-derived from (sku, location) so two writes for the
    same key land on the same document.
    """
    return {
        "id": make_item_id(item.sku, item.location),
        "sku": item.sku,
        "location": item.location,
        "name": item.name,
        "category": item.category,
        "system_quantity": item.system_quantity,
        "physical_quantity": item.physical_quantity,
        "status": item.status.value,
        "last_audited": item.last_audited.isoformat() if item.last_audited else None,
        "notes": item.notes,
        "company_id": item.company_id,
    }


def item_from_document(document: Document) -> AuditItem:
    """
    Map a stored document back to a reconciled record.

    The stored status is not trusted; it is derived again from the quantities.

    Raises:
        ValidationError: If a required field is missing or a value is malformed
    """
    missing = [field for field in _REQUIRED_DOCUMENT_FIELDS if not document.get(field)]
    if missing:
        raise ValidationError(
            f"Stored item '{document.get('id', 'unknown')}' is missing {', '.join(missing)}"
        )

    physical = document.get("physical_quantity")
    try:
        return AuditItem(
            id=document.get("id"),
            sku=str(document["sku"]),
            location=document["location"],
            name=document["name"],
            category=document.get("category") or DEFAULT_CATEGORY,
            system_quantity=int(document.get("system_quantity") or 0),
            physical_quantity=int(physical) if physical is not None else None,
            last_audited=document.get("last_audited"),
            notes=document.get("notes"),
            company_id=document.get("company_id"),
            etag=document.get("_etag"),
        )
    except (PydanticValidationError, TypeError, ValueError) as e:
        raise ValidationError(
            f"Stored item '{document.get('id', 'unknown')}' is malformed: {e}"
        ) from e


async def list_items(container: ContainerProxy) -> List[AuditItem]:
    """
    Read every reconciled record. Documents that fail mapping are logged and
    skipped rather than surfaced with empty fields.
    """
    with tracer.start_as_current_span("list_items") as span:
        try:
            documents = await select_all(container, lambda doc: bool(doc.get("sku")))
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during item listing",
                extra={"status_code": e.status_code, "error_message": e.message},
                exc_info=True,
            )
            raise to_persistence_error(e, "item listing") from e
        except Exception as e:
            mark_span_error(span, e)
            logger.error(
                "Unexpected error during item listing",
                extra={"error_type": type(e).__name__},
                exc_info=True,
            )
            raise PersistenceError(
                "An unexpected error occurred during database operation.",
                original_exception=e,
            ) from e

        items = []
        for document in documents:
            try:
                items.append(item_from_document(document))
            except ValidationError as e:
                logger.warning(f"Skipping stored item: {e}", extra={"item_id": document.get("id")})
        span.set_attribute("items.count", len(items))
        logger.info(f"Retrieved {len(items)} items", extra={"count": len(items)})
        return items


async def upsert_item(container: ContainerProxy, item: AuditItem) -> AuditItem:
    """
    Write one record keyed on (sku, location).

    When the record carries an ETag the write only succeeds if the stored
    document is unchanged since it was read.

    Raises:
        PreconditionFailedError: If the ETag no longer matches
        PersistenceError: If the database operation fails
    """
    with tracer.start_as_current_span("upsert_item") as span:
        span.set_attribute("item.sku", item.sku)
        span.set_attribute("item.location", item.location)
        span.set_attribute("item.conditional", item.etag is not None)

        document = item_to_document(item)
        kwargs: Dict[str, Any] = {}
        if item.etag:
            kwargs = {"etag": item.etag, "match_condition": MatchConditions.IfNotModified}

        try:
            result = await container.upsert_item(body=document, **kwargs)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            if e.status_code == 412:
                logger.warning(
                    "Item changed since it was read",
                    extra={"sku": item.sku, "location": item.location},
                )
            else:
                logger.error(
                    "Cosmos DB error during item upsert",
                    extra={
                        "status_code": e.status_code,
                        "error_message": e.message,
                        "sku": item.sku,
                        "location": item.location,
                    },
                    exc_info=True,
                )
            raise to_persistence_error(e, f"upsert of item '{item.sku}' at '{item.location}'") from e
        except Exception as e:
            mark_span_error(span, e)
            logger.error(
                "Unexpected error during item upsert",
                extra={"error_type": type(e).__name__, "sku": item.sku, "location": item.location},
                exc_info=True,
            )
            raise PersistenceError(
                "An unexpected error occurred during database operation.",
                original_exception=e,
            ) from e

        logger.info(
            "Item upserted",
            extra={"sku": item.sku, "location": item.location, "status": item.status.value},
        )
        return item_from_document(result)


async def upsert_items(container: ContainerProxy, items: List[AuditItem]) -> List[AuditItem]:
    """
    Keyed bulk upsert, one transactional batch per location (partition key)
    and chunk, with locations processed concurrently.

    Re-submitting the same records is harmless: ids derive from the key, so
    nothing is duplicated.

    Returns:
        The stored records, with fresh ETags

    Raises:
        PersistenceError: If any batch fails. Batches for other locations may
            already have been committed; the message says which.
    """
    if not items:
        return []

    items_by_location: Dict[str, List[AuditItem]] = defaultdict(list)
    for item in items:
        items_by_location[item.location].append(item)

    async def process_location_upserts(location_pk: str, location_items: List[AuditItem]):
        stored: List[AuditItem] = []
        for chunk in chunked(location_items):
            batch_operations = [("upsert", (item_to_document(item),), {}) for item in chunk]
            try:
                batch_results = await container.execute_item_batch(
                    batch_operations=batch_operations, partition_key=location_pk
                )
            except CosmosHttpResponseError as e:
                logger.error(
                    f"Cosmos DB batch upsert error for location '{location_pk}': {e.message}",
                    extra={"location": location_pk, "status_code": e.status_code},
                    exc_info=True,
                )
                for i, op_response in enumerate(getattr(e, "operation_responses", None) or []):
                    if i < len(chunk) and op_response.get("statusCode", 200) >= 400:
                        logger.error(
                            f"  Failed upsert op in batch for sku '{chunk[i].sku}': {op_response}"
                        )
                raise
            for result_item in batch_results:
                body = batch_result_body(result_item)
                if body is None:
                    logger.warning(
                        f"Unexpected item in batch upsert result for location '{location_pk}': {result_item}"
                    )
                    continue
                stored.append(item_from_document(body))
        return stored

    with tracer.start_as_current_span("upsert_items") as span:
        span.set_attribute("batch.size", len(items))
        span.set_attribute("batch.locations_count", len(items_by_location))
        logger.info(
            f"Upserting {len(items)} items across {len(items_by_location)} locations",
            extra={"batch_size": len(items), "locations": list(items_by_location)},
        )

        tasks = [
            asyncio.create_task(process_location_upserts(location, location_items))
            for location, location_items in items_by_location.items()
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        stored: List[AuditItem] = []
        failures: List[Tuple[str, BaseException]] = []
        for location, result in zip(items_by_location, results):
            if isinstance(result, BaseException):
                failures.append((location, result))
            else:
                stored.extend(result)

        if failures:
            first_location, first_error = failures[0]
            mark_span_error(span, first_error, getattr(first_error, "status_code", None))
            failed = ", ".join(location for location, _ in failures)
            committed = sorted(set(items_by_location) - {location for location, _ in failures})
            if isinstance(first_error, ApplicationError):
                detail = str(first_error)
            elif isinstance(first_error, CosmosHttpResponseError):
                detail = f"Status Code {first_error.status_code}, Message: {first_error.message}"
            else:
                detail = f"{type(first_error).__name__}: {first_error}"
            raise PersistenceError(
                f"Batch upsert failed for location(s) {failed} ({detail}). "
                f"Committed location(s): {', '.join(committed) or 'none'}.",
                original_exception=first_error,
            )

        span.set_attribute("batch.success_count", len(stored))
        logger.info(
            f"Successfully upserted {len(stored)}/{len(items)} items",
            extra={"success_count": len(stored), "batch_size": len(items)},
        )
        return stored


async def delete_all_items(container: ContainerProxy) -> int:
    """Bulk reset: remove every reconciled record. Returns the number deleted."""
    with tracer.start_as_current_span("delete_all_items") as span:
        deleted = 0
        try:
            documents = await select_all(container)
            for document in documents:
                await container.delete_item(item=document["id"], partition_key=document.get("location"))
                deleted += 1
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during item reset",
                extra={"status_code": e.status_code, "error_message": e.message, "deleted": deleted},
                exc_info=True,
            )
            raise to_persistence_error(e, f"item reset after {deleted} deletions") from e
        span.set_attribute("items.deleted", deleted)
        logger.info(f"Deleted {deleted} items", extra={"count": deleted})
        return deleted
