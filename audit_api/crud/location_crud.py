import uuid
from typing import List

from azure.core import MatchConditions
from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError

from audit_api.crud.common import select_all, to_persistence_error
from audit_api.exceptions import LocationNotFoundError, PersistenceError
from audit_api.logging_config import get_child_logger, mark_span_error, tracer
from audit_api.models.location import LocationCreate, LocationRead

# Create a child logger for this module
logger = get_child_logger("crud.location")


async def list_locations(container: ContainerProxy) -> List[LocationRead]:
    """Retrieve every location, ordered by name."""
    with tracer.start_as_current_span("list_locations") as span:
        try:
            documents = await select_all(container)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during location listing",
                extra={"status_code": e.status_code, "error_message": e.message},
                exc_info=True,
            )
            raise to_persistence_error(e, "location listing") from e

        locations = [LocationRead.model_validate(document) for document in documents]
        locations.sort(key=lambda location: location.name)
        span.set_attribute("locations.count", len(locations))
        return locations


async def create_location(container: ContainerProxy, location: LocationCreate) -> LocationRead:
    """
    Store a new location under a generated id.

    Raises:
        PersistenceError: If a database operation fails
    """
    with tracer.start_as_current_span("create_location") as span:
        data = location.model_dump()
        data["id"] = str(uuid.uuid4())
        span.set_attribute("location.id", data["id"])
        span.set_attribute("location.name", data["name"])

        logger.info(
            "Creating new location",
            extra={"location_id": data["id"], "location_name": data["name"]},
        )
        try:
            result = await container.create_item(body=data)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during location creation",
                extra={"status_code": e.status_code, "error_message": e.message, "location_id": data["id"]},
                exc_info=True,
            )
            raise to_persistence_error(e, "location creation") from e
        return LocationRead.model_validate(result)


async def replace_location(container: ContainerProxy, location: LocationRead) -> LocationRead:
    """
    Overwrite a location document, guarded by its ETag when known.

    Raises:
        LocationNotFoundError: If the location doesn't exist
        PreconditionFailedError: If the location changed since it was read
        PersistenceError: If a database operation fails
    """
    with tracer.start_as_current_span("replace_location") as span:
        span.set_attribute("location.id", location.id)
        body = location.model_dump(exclude={"etag", "ts"})
        kwargs = {}
        if location.etag:
            kwargs = {"etag": location.etag, "match_condition": MatchConditions.IfNotModified}
        try:
            result = await container.replace_item(item=location.id, body=body, **kwargs)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            if e.status_code == 404:
                raise LocationNotFoundError(f"Location with ID '{location.id}' not found") from e
            logger.error(
                f"Cosmos DB error during location update: Status Code {e.status_code}, Message: {e.message}",
                exc_info=True,
            )
            raise to_persistence_error(e, "location update") from e
        return LocationRead.model_validate(result)


async def delete_location(container: ContainerProxy, location_id: str) -> bool:
    """
    Delete a location document.

    Returns:
        False when the location was already gone

    Raises:
        PersistenceError: If a database operation fails
    """
    with tracer.start_as_current_span("delete_location") as span:
        span.set_attribute("location.id", location_id)
        try:
            await container.delete_item(item=location_id, partition_key=location_id)
            return True
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                logger.info("Location already deleted", extra={"location_id": location_id})
                return False
            mark_span_error(span, e, e.status_code)
            logger.error(
                f"Cosmos DB error during location deletion: Status Code {e.status_code}, Message: {e.message}",
                exc_info=True,
            )
            raise to_persistence_error(e, "location deletion") from e
        except Exception as e:
            mark_span_error(span, e)
            logger.error(f"Unexpected error during location deletion: {e}", exc_info=True)
            raise PersistenceError(
                "An unexpected error occurred during database operation.",
                original_exception=e,
            ) from e
