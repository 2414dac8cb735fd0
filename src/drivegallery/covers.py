# covers.py
import logging
from typing import Callable, Optional, Sequence

from .storage.base import ORDER_BY_CREATED, StorageClient, first_entry, iter_all_entries
from .storage.dto import ChildFilter

COVER_FOLDER_NAME = "cover"

# A strategy maps a folder id to an image id, or None to defer to the next one.
CoverStrategy = Callable[[str], Optional[str]]


class CoverSubfolderStrategy:
    """Earliest-created image inside a child folder named `cover` (any case)."""

    def __init__(self, store: StorageClient, folder_name: str = COVER_FOLDER_NAME):
        self.store = store
        self.folder_name = folder_name.casefold()

    def find_cover_folder(self, folder_id: str) -> Optional[str]:
        for entry in iter_all_entries(self.store, folder_id, ChildFilter.folders()):
            if entry.name.casefold() == self.folder_name:
                return entry.id
        return None

    def __call__(self, folder_id: str) -> Optional[str]:
        cover_folder_id = self.find_cover_folder(folder_id)
        if cover_folder_id is None:
            return None
        image = first_entry(
            self.store, cover_folder_id, ChildFilter.images(), order_by=ORDER_BY_CREATED
        )
        if image is None:
            logging.debug(f"Cover folder '{cover_folder_id}' of '{folder_id}' holds no image.")
            return None
        return image.id


class DirectImageStrategy:
    """Earliest-created image directly inside the folder."""

    def __init__(self, store: StorageClient):
        self.store = store

    def __call__(self, folder_id: str) -> Optional[str]:
        image = first_entry(
            self.store, folder_id, ChildFilter.images(), order_by=ORDER_BY_CREATED
        )
        return image.id if image else None


class CoverResolver:
    """
    Picks one representative image per folder by trying strategies in order.
    The first strategy that returns an id wins and later ones never run.
    Upstream errors are not swallowed: they propagate to the caller.
    """

    def __init__(self, strategies: Sequence[CoverStrategy]):
        if not strategies:
            raise ValueError("CoverResolver needs at least one strategy.")
        self.strategies = list(strategies)

    def resolve(self, folder_id: str) -> Optional[str]:
        for strategy in self.strategies:
            image_id = strategy(folder_id)
            if image_id is not None:
                return image_id
        logging.info(f"No cover image found for folder '{folder_id}'.")
        return None


def default_cover_resolver(store: StorageClient) -> CoverResolver:
    """Cover subfolder first, then the folder's own images."""
    return CoverResolver([CoverSubfolderStrategy(store), DirectImageStrategy(store)])
