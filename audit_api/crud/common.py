from typing import Any, Callable, Dict, List, Optional

from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError

from audit_api.exceptions import PersistenceError, PreconditionFailedError

Document = Dict[str, Any]

# Cosmos DB transactional batches are capped at 100 operations
BATCH_LIMIT = 100


async def select_all(
    container: ContainerProxy,
    predicate: Optional[Callable[[Document], bool]] = None,
) -> List[Document]:
    """Full scan of a container, optionally filtered client-side."""
    documents = []
    async for document in container.query_items(query="SELECT * FROM c"):
        if predicate is None or predicate(document):
            documents.append(document)
    return documents


def chunked(values: List[Any], size: int = BATCH_LIMIT) -> List[List[Any]]:
    return [values[start:start + size] for start in range(0, len(values), size)]


def batch_result_body(result_item: Any) -> Optional[Document]:
    """Pull the stored document out of one transactional-batch result entry."""
    if not isinstance(result_item, dict):
        return None
    body = result_item.get("resourceBody", result_item)
    if isinstance(body, dict) and body.get("id"):
        return body
    return None


def to_persistence_error(e: CosmosHttpResponseError, action: str) -> PersistenceError:
    if e.status_code == 412:  # Precondition Failed (ETag mismatch)
        return PreconditionFailedError(
            f"{action} rejected: the document was modified by someone else (ETag mismatch).",
            original_exception=e,
        )
    return PersistenceError(
        f"Cosmos DB error during {action}: Status Code {e.status_code}, Message: {e.message}",
        original_exception=e,
    )
