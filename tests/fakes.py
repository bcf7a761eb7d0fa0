"""In-memory stand-in for the parts of azure.cosmos.aio.ContainerProxy the crud layer uses."""
import copy
import itertools

from azure.core import MatchConditions
from azure.cosmos.exceptions import CosmosHttpResponseError

_etags = itertools.count(1)


def cosmos_error(status_code, message="injected failure"):
    return CosmosHttpResponseError(status_code=status_code, message=message)


class FakeContainer:
    """
    Documents are keyed by (partition key value, id). Failures are injected
    per operation name (`fail("upsert_item", 503)`) or per partition for
    transactional batches (`fail_partition("Store A", 500)`).
    """

    def __init__(self, partition_key="id", documents=()):
        self.partition_key = partition_key
        self.documents = {}
        self.failures = {}
        self.partition_failures = {}
        self.calls = []
        for document in documents:
            self._store(document)

    # Test helpers

    def fail(self, operation, status_code=503, after=0):
        """Fail `operation` with `status_code` once `after` calls have succeeded."""
        self.failures[operation] = [status_code, after]

    def fail_partition(self, partition_value, status_code=500):
        self.partition_failures[partition_value] = status_code

    def all(self):
        return [copy.deepcopy(document) for document in self.documents.values()]

    def get(self, document_id):
        for (_, stored_id), document in self.documents.items():
            if stored_id == document_id:
                return copy.deepcopy(document)
        return None

    # Internals

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is None:
            return
        status_code, after = failure
        if after > 0:
            failure[1] = after - 1
            return
        raise cosmos_error(status_code)

    def _key(self, document):
        return (document.get(self.partition_key), document["id"])

    def _store(self, body):
        document = copy.deepcopy(body)
        document["_etag"] = f'"etag-{next(_etags)}"'
        document["_ts"] = 1700000000
        self.documents[self._key(document)] = document
        return copy.deepcopy(document)

    def _check_etag(self, existing, etag, match_condition):
        if etag and match_condition == MatchConditions.IfNotModified:
            if existing is None or existing.get("_etag") != etag:
                raise cosmos_error(412, "Precondition Failed")

    # ContainerProxy surface

    async def upsert_item(self, body, etag=None, match_condition=None, **kwargs):
        self._maybe_fail("upsert_item")
        self._check_etag(self.documents.get(self._key(body)), etag, match_condition)
        return self._store(body)

    async def create_item(self, body, **kwargs):
        self._maybe_fail("create_item")
        if self._key(body) in self.documents:
            raise cosmos_error(409, "Conflict")
        return self._store(body)

    async def replace_item(self, item, body, etag=None, match_condition=None, **kwargs):
        self._maybe_fail("replace_item")
        key = (body.get(self.partition_key), item)
        existing = self.documents.get(key)
        if existing is None:
            raise cosmos_error(404, "Not Found")
        self._check_etag(existing, etag, match_condition)
        return self._store(dict(body, id=item))

    async def read_item(self, item, partition_key, **kwargs):
        self._maybe_fail("read_item")
        document = self.documents.get((partition_key, item))
        if document is None:
            raise cosmos_error(404, "Not Found")
        return copy.deepcopy(document)

    async def delete_item(self, item, partition_key, **kwargs):
        self._maybe_fail("delete_item")
        if self.documents.pop((partition_key, item), None) is None:
            raise cosmos_error(404, "Not Found")

    async def execute_item_batch(self, batch_operations, partition_key, **kwargs):
        self._maybe_fail("execute_item_batch")
        if partition_key in self.partition_failures:
            raise cosmos_error(self.partition_failures[partition_key], "Batch failed")
        results = []
        for operation, args, _ in batch_operations:
            assert operation == "upsert"
            body = args[0]
            assert body.get(self.partition_key) == partition_key
            results.append({"statusCode": 200, "resourceBody": self._store(body)})
        return results

    def query_items(self, query, **kwargs):
        self._maybe_fail("query_items")
        return self._iterate()

    async def _iterate(self):
        for document in list(self.documents.values()):
            yield copy.deepcopy(document)
