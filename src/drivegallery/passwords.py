# passwords.py
import logging
import re
from typing import Optional

from .storage.base import StorageClient, first_entry
from .storage.dto import ChildFilter

PASSWORD_FILE_NAME = "password.txt"
PASSWORD_MAX_BYTES = 4096

# Zero-width spaces and joiners, direction marks, word joiner, BOM, soft hyphen.
_INVISIBLE_CHARS = re.compile("[\u200b-\u200f\u2060\ufeff\u00ad]")


def sanitize_password(text: str) -> str:
    """Strips invisible characters, normalizes line endings to LF and trims."""
    text = _INVISIBLE_CHARS.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def find_password_file(
    store: StorageClient, folder_id: str, file_name: str = PASSWORD_FILE_NAME
) -> Optional[str]:
    """Returns the id of the folder's password file, or None if it has none."""
    entry = first_entry(store, folder_id, ChildFilter.named(file_name))
    return entry.id if entry else None


def read_password(
    store: StorageClient,
    file_id: str,
    max_bytes: int = PASSWORD_MAX_BYTES,
    chunk_size: int = 1024,
) -> str:
    """
    Reads at most `max_bytes` of the password file and returns it sanitized.
    Anything past the limit is not downloaded.
    """
    stream = store.open_stream(file_id, chunk_size)
    data = bytearray()
    try:
        for chunk in stream:
            data.extend(chunk)
            if len(data) > max_bytes:
                logging.warning(
                    f"Password file '{file_id}' exceeds {max_bytes} bytes; truncating."
                )
                del data[max_bytes:]
                break
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()
    return sanitize_password(data.decode("utf-8-sig", errors="replace"))
