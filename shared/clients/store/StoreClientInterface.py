from abc import abstractmethod
from typing import Literal

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import VectorDocument
from shared.models.search import VectorFilter

OrderBy = Literal["id", "timestamp"]


class StoreClientInterface(ClientInterface):
    """Durable persistence of vector documents.

    Ids are assigned by the backend on insert. They are unique, increase
    monotonically and are never reused, also not after a delete or clear.
    Documents are immutable once stored.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "store"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ################ WRITE ##################
    @abstractmethod
    async def do_add(self, doc: VectorDocument) -> int:
        """Persist a document and return its freshly assigned id.

        The id field of the given document is ignored.
        """
        pass

    @abstractmethod
    async def do_delete(self, doc_id: int) -> bool:
        """Delete a single document.

        Returns:
            bool: False if the id is unknown.
        """
        pass

    @abstractmethod
    async def do_bulk_delete(self, doc_ids: list[int]) -> int:
        """Delete several documents. Unknown ids are ignored.

        Returns:
            int: Number of documents actually deleted.
        """
        pass

    @abstractmethod
    async def do_clear(self) -> int:
        """Delete all documents.

        Returns:
            int: Number of deleted documents.
        """
        pass

    ################ READ ##################
    @staticmethod
    def _cursor_key(order_by: OrderBy, after_id: int | None, after_timestamp: int | None) -> tuple[int, ...] | None:
        """The do_find cursor as a sort key, None when no cursor is given."""
        if after_id is None:
            return None
        if order_by == "timestamp":
            if after_timestamp is None:
                raise ValueError("after_timestamp is required to page in timestamp order")
            return (after_timestamp, after_id)
        return (after_id,)

    @abstractmethod
    async def do_get(self, doc_id: int) -> VectorDocument | None:
        """Return the document with the given id, or None."""
        pass

    @abstractmethod
    async def do_find(
        self,
        filters: VectorFilter | None = None,
        order_by: OrderBy = "id",
        offset: int = 0,
        limit: int | None = None,
        after_id: int | None = None,
        after_timestamp: int | None = None,
    ) -> list[VectorDocument]:
        """Return documents matching the filter in ascending order of order_by.

        Ties in timestamp order are broken by id. Long scans page with the
        after_* cursor of the last document seen rather than with offset, so
        that deletes between pages do not shift the window.

        Args:
            filters (VectorFilter | None): Metadata filter. None matches everything.
            order_by (str): "id" or "timestamp".
            offset (int): Number of matching documents to skip.
            limit (int | None): Maximum number of documents to return.
            after_id (int | None): Only documents after this id in the chosen order.
            after_timestamp (int | None): Timestamp of the after_id document, required in timestamp order.
        """
        pass

    @abstractmethod
    async def do_count(self, filters: VectorFilter | None = None) -> int:
        """Count documents matching the filter."""
        pass
