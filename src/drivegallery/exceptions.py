# exceptions.py


class PermanentError(Exception):
    """An error that will not be fixed by a retry (e.g., a bad request to the store)."""
    pass


class TransientError(Exception):
    """A temporary error (e.g., a network failure) that might resolve on a retry."""
    pass


class NotFoundError(PermanentError):
    """The requested folder or file id has no corresponding entry in the store."""

    def __init__(self, target_id: str, message: str | None = None):
        self.target_id = target_id
        super().__init__(message or f"No entry found for id '{target_id}'.")


class TransformError(PermanentError):
    """The source image could not be decoded, resized or re-encoded."""
    pass
