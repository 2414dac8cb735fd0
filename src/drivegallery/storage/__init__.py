from .base import StorageClient, iter_all_entries, first_entry, ORDER_BY_CREATED
from .dto import Album, ChildFilter, Entry, EntryPage

__all__ = [
    "StorageClient",
    "iter_all_entries",
    "first_entry",
    "ORDER_BY_CREATED",
    "Album",
    "ChildFilter",
    "Entry",
    "EntryPage",
]
