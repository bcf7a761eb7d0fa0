from typing import Dict, Optional
from azure.cosmos.aio import CosmosClient, ContainerProxy
from azure.identity.aio import DefaultAzureCredential
import os

from enum import Enum

from audit_api.logging_config import get_child_logger

logger = get_child_logger("db")


class ContainerType(str, Enum):
    ITEMS = "items"
    LOCATIONS = "locations"
    QUESTIONS = "questions"
    ANSWERS = "answers"


# Environment variable and default container name per container type
_CONTAINER_SETTINGS = {
    ContainerType.ITEMS: ("COSMOSDB_CONTAINER_ITEMS", "audit_items"),
    ContainerType.LOCATIONS: ("COSMOSDB_CONTAINER_LOCATIONS", "locations"),
    ContainerType.QUESTIONS: ("COSMOSDB_CONTAINER_QUESTIONS", "questions"),
    ContainerType.ANSWERS: ("COSMOSDB_CONTAINER_ANSWERS", "questionnaire_answers"),
}

_client: Optional[CosmosClient] = None
_credential: Optional[DefaultAzureCredential] = None


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"{name} environment variable must be set")
    return value


def container_names() -> Dict[ContainerType, str]:
    return {
        container_type: os.environ.get(env_name, default)
        for container_type, (env_name, default) in _CONTAINER_SETTINGS.items()
    }


async def _ensure_client() -> CosmosClient:
    global _client, _credential
    if _client is None:
        endpoint = _require_env("COSMOSDB_ENDPOINT")
        logger.info("Creating CosmosDB client with DefaultAzureCredential")
        _credential = DefaultAzureCredential()
        _client = CosmosClient(endpoint, _credential)
    return _client


async def get_container(container_type: ContainerType) -> ContainerProxy:
    container_name = container_names().get(container_type)
    if not container_name:
        raise ValueError(
            f"Container '{container_type}' not configured. "
            f"Valid options: {[c.value for c in ContainerType]}"
        )

    client = await _ensure_client()
    database = client.get_database_client(_require_env("COSMOSDB_DATABASE"))
    return database.get_container_client(container_name)

