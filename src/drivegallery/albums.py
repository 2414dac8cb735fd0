# albums.py
import asyncio
import logging
import time
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from .cache import AlbumCache, album_cache_key
from .covers import CoverResolver, default_cover_resolver
from .pagination import PaginationForwarder
from .passwords import PASSWORD_FILE_NAME, PASSWORD_MAX_BYTES, find_password_file, read_password
from .storage.base import StorageClient, iter_all_entries
from .storage.dto import Album, ChildFilter, Entry, EntryPage


class AlbumService:
    """
    Request-facing operations over the store. Blocking store calls run in
    the threadpool so that one request never stalls the event loop.
    """

    def __init__(
        self,
        store: StorageClient,
        cache: AlbumCache,
        resolver: Optional[CoverResolver] = None,
        forwarder: Optional[PaginationForwarder] = None,
        password_file_name: str = PASSWORD_FILE_NAME,
        password_max_bytes: int = PASSWORD_MAX_BYTES,
    ):
        self.store = store
        self.cache = cache
        self.resolver = resolver or default_cover_resolver(store)
        self.forwarder = forwarder or PaginationForwarder(store)
        self.password_file_name = password_file_name
        self.password_max_bytes = password_max_bytes

    def _list_folders(self, root_id: str) -> List[Entry]:
        return list(iter_all_entries(self.store, root_id, ChildFilter.folders()))

    async def _build_album(self, folder: Entry) -> Album:
        cover_image_id = await run_in_threadpool(self.resolver.resolve, folder.id)
        return Album(id=folder.id, name=folder.name, cover_image_id=cover_image_id)

    async def list_albums(self, root_id: str) -> List[Album]:
        """
        Albums under a root, served from the cache when possible.
        On a miss every folder's cover is resolved concurrently, so the
        listing takes about as long as the slowest folder.
        """
        cache_key = album_cache_key("albums", root_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logging.info(f"Serving albums for root '{root_id}' from cache.")
            return cached

        start_time = time.monotonic()
        folders = await run_in_threadpool(self._list_folders, root_id)
        albums = list(await asyncio.gather(*(self._build_album(f) for f in folders)))

        self.cache.set(cache_key, albums)
        duration = time.monotonic() - start_time
        logging.info(
            f"Resolved {len(albums)} albums for root '{root_id}' in {duration:.2f} seconds."
        )
        return albums

    async def list_images(self, folder_id: str, page_token: Optional[str] = None) -> EntryPage:
        return await run_in_threadpool(self.forwarder.list, folder_id, page_token)

    async def find_password_file(self, folder_id: str) -> Optional[str]:
        return await run_in_threadpool(
            find_password_file, self.store, folder_id, self.password_file_name
        )

    async def read_password(self, file_id: str) -> str:
        return await run_in_threadpool(
            read_password, self.store, file_id, self.password_max_bytes
        )

    async def get_metadata(self, file_id: str) -> Entry:
        return await run_in_threadpool(self.store.get_metadata, file_id)

    async def list_folder_images(self, folder_id: str) -> List[Entry]:
        """Every image directly inside a folder, across all pages."""
        return await run_in_threadpool(
            lambda: list(iter_all_entries(self.store, folder_id, ChildFilter.images()))
        )
