# streaming.py
import logging
from typing import AsyncIterator, Callable, Iterator, Optional

from starlette.concurrency import run_in_threadpool


def next_or_none(iterator: Iterator[bytes]) -> Optional[bytes]:
    """next() that signals exhaustion with None; StopIteration cannot cross a thread future."""
    return next(iterator, None)


async def pump(
    pull: Callable[[], Optional[bytes]],
    close: Callable[[], None],
    first: Optional[bytes] = None,
    label: str = "stream",
) -> AsyncIterator[bytes]:
    """
    Bridges a blocking chunk source to an ASGI response body.

    One chunk is pulled only after the previous one was handed to the server,
    which in turn only asks again once the client connection has drained it.
    If the client goes away the generator is closed or cancelled, and `close`
    releases the source before anything else is pulled. Errors after the
    first byte can only terminate the stream; they are logged and re-raised
    so that the server aborts the connection instead of ending it cleanly.
    """
    try:
        if first:
            yield first
        while True:
            chunk = await run_in_threadpool(pull)
            if chunk is None:
                return
            yield chunk
    except Exception as e:
        logging.error(f"Aborting {label} mid-stream: {e}")
        raise
    finally:
        close()
