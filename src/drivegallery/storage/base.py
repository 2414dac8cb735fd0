# storage/base.py
from abc import ABC, abstractmethod
from typing import Iterator, Optional

from .dto import ChildFilter, Entry, EntryPage

# Creation time ascending, oldest first.
ORDER_BY_CREATED = "createdTime"


class StorageClient(ABC):
    """
    Abstract base class for a read-only remote media store.
    Defines the common interface the cover resolver, pagination forwarder,
    thumbnail pipeline and HTTP layer rely on.

    Implementations raise `NotFoundError` for missing ids, `TransientError`
    for failures that might resolve on their own and `PermanentError` for
    everything else. They never retry on their own behalf.
    """

    @abstractmethod
    def list_children(
        self,
        parent_id: str,
        child_filter: ChildFilter,
        page_token: Optional[str] = None,
        page_size: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> EntryPage:
        """
        Lists one page of the immediate children of a folder.

        :param parent_id: The ID of the folder to list.
        :param child_filter: Restricts the listing to folders, images or a name.
        :param page_token: Opaque cursor from a previous page, or None for the first page.
        :param page_size: Maximum number of entries on the page.
        :param order_by: Provider ordering expression, e.g. ORDER_BY_CREATED.
        :return: The page of entries and the cursor of the next page (None on the last one).
        """
        pass

    @abstractmethod
    def get_metadata(self, file_id: str) -> Entry:
        """
        Returns the metadata of a single folder or file.

        :param file_id: The ID of the entry.
        """
        pass

    @abstractmethod
    def open_stream(self, file_id: str, chunk_size: int) -> Iterator[bytes]:
        """
        Streams a file's content in chunks of at most `chunk_size` bytes.

        The returned iterator fetches lazily: nothing past the current chunk
        is read until the consumer asks for it. Closing it releases the download.

        :param file_id: The ID of the file to stream.
        :param chunk_size: Upper bound of each yielded chunk.
        """
        pass


def iter_all_entries(
    store: StorageClient,
    parent_id: str,
    child_filter: ChildFilter,
    order_by: Optional[str] = None,
) -> Iterator[Entry]:
    """Follows next-page tokens until the store reports there are no more pages."""
    page_token = None
    while True:
        page = store.list_children(
            parent_id, child_filter, page_token=page_token, order_by=order_by
        )
        yield from page.entries
        if not page.next_page_token:
            return
        page_token = page.next_page_token


def first_entry(
    store: StorageClient,
    parent_id: str,
    child_filter: ChildFilter,
    order_by: Optional[str] = None,
) -> Optional[Entry]:
    """
    Returns the first child matching the filter, or None.
    A page may come back empty while more pages exist, so the token is
    followed until an entry shows up or the listing ends.
    """
    page_token = None
    while True:
        page = store.list_children(
            parent_id,
            child_filter,
            page_token=page_token,
            page_size=1,
            order_by=order_by,
        )
        if page.entries:
            return page.entries[0]
        if not page.next_page_token:
            return None
        page_token = page.next_page_token
