# tests/conftest.py
import io
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional

import pytest
from PIL import Image

from drivegallery.cache import AlbumCache
from drivegallery.config import Settings, get_settings
from drivegallery.exceptions import NotFoundError
from drivegallery.storage.base import StorageClient
from drivegallery.storage.dto import FOLDER_MIME_TYPE, ChildFilter, Entry, EntryPage

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeStore(StorageClient):
    """
    In-memory StorageClient. Pages are small by default so that paging is
    exercised, and page tokens are deliberately not plain offsets.
    """

    def __init__(self, default_page_size: int = 2):
        self.default_page_size = default_page_size
        self.entries: Dict[str, Entry] = {}
        self.children: Dict[str, List[str]] = {}
        self.contents: Dict[str, bytes] = {}
        self.list_calls = []
        self.opened: List[str] = []
        self.closed: List[str] = []
        self.chunks_read: Dict[str, int] = {}
        self._clock = 0

    def add_folder(self, folder_id: str, name: str, parent_id: Optional[str] = None) -> Entry:
        return self._add(folder_id, name, FOLDER_MIME_TYPE, parent_id)

    def add_file(
        self,
        file_id: str,
        name: str,
        parent_id: str,
        mime_type: str = "image/png",
        content: bytes = b"",
        created_offset: Optional[int] = None,
    ) -> Entry:
        entry = self._add(file_id, name, mime_type, parent_id, created_offset)
        self.contents[file_id] = content
        return entry

    def _add(self, entry_id, name, mime_type, parent_id, created_offset=None) -> Entry:
        self._clock += 1
        offset = self._clock if created_offset is None else created_offset
        entry = Entry(
            id=entry_id,
            name=name,
            mime_type=mime_type,
            created_at=BASE_TIME + timedelta(minutes=offset),
        )
        self.entries[entry_id] = entry
        if parent_id is not None:
            self.children.setdefault(parent_id, []).append(entry_id)
        return entry

    def _matches(self, entry: Entry, child_filter: ChildFilter) -> bool:
        if child_filter.kind == "folder" and not entry.is_folder:
            return False
        if child_filter.kind == "image" and not entry.is_image:
            return False
        if child_filter.name is not None and entry.name != child_filter.name:
            return False
        return True

    def list_children(self, parent_id, child_filter, page_token=None, page_size=None, order_by=None):
        self.list_calls.append((parent_id, child_filter, page_token, page_size, order_by))
        if parent_id not in self.entries:
            raise NotFoundError(parent_id)
        matching = [
            self.entries[i]
            for i in self.children.get(parent_id, [])
            if self._matches(self.entries[i], child_filter)
        ]
        if order_by == "createdTime":
            matching.sort(key=lambda e: e.created_at)
        size = page_size or self.default_page_size
        start = int(page_token.split("~")[1]) if page_token else 0
        end = start + size
        next_token = f"cursor~{end}~{parent_id}" if end < len(matching) else None
        return EntryPage(entries=matching[start:end], next_page_token=next_token)

    def get_metadata(self, file_id):
        if file_id not in self.entries:
            raise NotFoundError(file_id)
        return self.entries[file_id]

    def open_stream(self, file_id, chunk_size) -> Iterator[bytes]:
        if file_id not in self.contents:
            raise NotFoundError(file_id)
        return self._stream(file_id, chunk_size)

    def _stream(self, file_id, chunk_size):
        self.opened.append(file_id)
        self.chunks_read[file_id] = 0
        data = self.contents[file_id]
        try:
            for offset in range(0, len(data), chunk_size):
                self.chunks_read[file_id] += 1
                yield data[offset:offset + chunk_size]
        finally:
            self.closed.append(file_id)


def make_image_bytes(width=1200, height=800, fmt="PNG", color=(200, 40, 40), mode="RGB") -> bytes:
    """Builds an image with some structure so that encoders have work to do."""
    image = Image.new(mode, (width, height), color)
    for x in range(0, width, 50):
        for y in range(0, height, 50):
            image.putpixel((x, y), (0, 0, 0) if mode == "RGB" else (0, 0, 0, 255))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_clock():
    """A controllable monotonic clock: call it for the time, advance() to move it."""

    class Clock:
        def __init__(self):
            self.now = 1000.0

        def __call__(self):
            return self.now

        def advance(self, seconds):
            self.now += seconds

    return Clock()


@pytest.fixture
def album_cache(fake_clock):
    return AlbumCache(ttl_seconds=300, clock=fake_clock)


@pytest.fixture
def test_settings():
    """
    Real settings built without reading the environment or a .env file.
    """
    return Settings(
        _env_file=None,
        GDRIVE_TOKEN_JSON="{}",
        IMAGES_PAGE_SIZE=2,
        STREAM_CHUNK_SIZE=4096,
        CORS_ORIGINS=["http://localhost:3000"],
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make sure no test sees settings cached by another one."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
