# pagination.py
from typing import Optional

from .storage.base import ORDER_BY_CREATED, StorageClient
from .storage.dto import ChildFilter, EntryPage

DEFAULT_PAGE_SIZE = 50


class PaginationForwarder:
    """
    Pass-through listing of a folder's images, one page per call.

    The page token is owned by the store: it is forwarded as received and
    handed back as returned, never parsed, rebuilt or kept. Pages are not
    retried, reordered or cached.
    """

    def __init__(
        self,
        store: StorageClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        child_filter: ChildFilter = ChildFilter.images(),
        order_by: Optional[str] = ORDER_BY_CREATED,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.store = store
        self.page_size = page_size
        self.child_filter = child_filter
        self.order_by = order_by

    def list(
        self,
        folder_id: str,
        page_token: Optional[str] = None,
        child_filter: Optional[ChildFilter] = None,
    ) -> EntryPage:
        """
        Returns one page. An absent or empty token asks for the first page;
        a None next_page_token on the result is the only end-of-list signal.
        `child_filter` overrides the forwarder's default filter for this call.
        """
        return self.store.list_children(
            folder_id,
            child_filter or self.child_filter,
            page_token=page_token or None,
            page_size=self.page_size,
            order_by=self.order_by,
        )
