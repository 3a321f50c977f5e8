import itertools

from shared.clients.store.StoreClientInterface import OrderBy, StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import VectorDocument
from shared.models.search import VectorFilter


class StoreClientMemory(StoreClientInterface):
    """Process-local store. Contents are lost on restart; used for tests and ephemeral sessions."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._docs: dict[int, VectorDocument] = {}
        self._ids = itertools.count(1)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def do_healthcheck(self) -> bool:
        return True

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _matching(self, filters: VectorFilter | None) -> list[VectorDocument]:
        if filters is None or filters.is_empty():
            return list(self._docs.values())
        return [doc for doc in self._docs.values() if filters.matches(doc)]

    async def do_add(self, doc: VectorDocument) -> int:
        doc_id = next(self._ids)
        self._docs[doc_id] = doc.model_copy(update={"id": doc_id}, deep=True)
        return doc_id

    async def do_get(self, doc_id: int) -> VectorDocument | None:
        doc = self._docs.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def do_find(
        self,
        filters: VectorFilter | None = None,
        order_by: OrderBy = "id",
        offset: int = 0,
        limit: int | None = None,
        after_id: int | None = None,
        after_timestamp: int | None = None,
    ) -> list[VectorDocument]:
        if order_by == "timestamp":
            sort_key = lambda d: (d.metadata.timestamp, d.id)
        else:
            sort_key = lambda d: (d.id,)
        docs = sorted(self._matching(filters), key=sort_key)
        cursor = self._cursor_key(order_by, after_id, after_timestamp)
        if cursor is not None:
            docs = [doc for doc in docs if sort_key(doc) > cursor]
        end = None if limit is None else offset + limit
        return [doc.model_copy(deep=True) for doc in docs[offset:end]]

    async def do_count(self, filters: VectorFilter | None = None) -> int:
        return len(self._matching(filters))

    async def do_delete(self, doc_id: int) -> bool:
        return self._docs.pop(doc_id, None) is not None

    async def do_bulk_delete(self, doc_ids: list[int]) -> int:
        return sum(1 for doc_id in set(doc_ids) if self._docs.pop(doc_id, None) is not None)

    async def do_clear(self) -> int:
        count = len(self._docs)
        self._docs.clear()
        return count
