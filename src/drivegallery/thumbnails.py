"""
Thumbnail pipeline

Turns a file's byte stream into a resized, re-encoded image stream:

    source chunks -> incremental decode -> resize -> encode -> output chunks

Every stage is pull-based. Nothing is read from the source until the
consumer asks for output, and each chunk goes to Pillow's incremental
parser as soon as it arrives, so decoding starts with the first bytes
instead of after the whole file was downloaded. Closing the output closes
the source.
"""

import io
import logging
from typing import Iterable, Iterator, Optional

from PIL import Image, ImageFile

from .exceptions import TransformError

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 600
DEFAULT_FORMAT = "webp"
DEFAULT_QUALITY = 80
DEFAULT_CHUNK_SIZE = 256 * 1024

# The output is a pure function of (file id, width), so it may be cached forever.
THUMBNAIL_CACHE_CONTROL = "public, max-age=31536000, immutable"

_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


def _close(source) -> None:
    close = getattr(source, "close", None)
    if close is not None:
        close()


def _scaled_height(size, width: int) -> int:
    src_width, src_height = size
    return max(1, round(src_height * width / src_width))


class IncrementalDecoder:
    """Pillow's incremental parser, with decode failures raised as TransformError."""

    def __init__(self):
        self._parser = ImageFile.Parser()
        self.bytes_fed = 0

    def feed(self, chunk: bytes) -> None:
        try:
            self._parser.feed(chunk)
        except _DECODE_ERRORS as e:
            raise TransformError(f"Could not decode image data: {e}") from e
        self.bytes_fed += len(chunk)

    def close(self) -> Image.Image:
        try:
            return self._parser.close()
        except _DECODE_ERRORS as e:
            raise TransformError(f"Could not decode image data: {e}") from e


def decode(chunks: Iterable[bytes]) -> Image.Image:
    """
    Feeds chunks to the decoder one at a time, as the source yields them,
    and returns the image once the source is exhausted. The source is
    closed whether decoding succeeds or not.
    """
    decoder = IncrementalDecoder()
    try:
        for chunk in chunks:
            decoder.feed(chunk)
        return decoder.close()
    finally:
        _close(chunks)


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


def resize(image: Image.Image, width: int) -> Image.Image:
    """Scales to `width` keeping the aspect ratio. Height is at least one pixel."""
    if width < 1:
        raise ValueError("width must be at least 1")
    height = _scaled_height(image.size, width)
    mode = "RGBA" if _has_alpha(image) else "RGB"
    if image.mode != mode:
        image = image.convert(mode)
    return image.resize((width, height), Image.Resampling.LANCZOS)


def encode(image: Image.Image, fmt: str = DEFAULT_FORMAT, quality: int = DEFAULT_QUALITY) -> bytes:
    fmt = fmt.upper()
    if fmt == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=fmt, quality=quality)
    except (OSError, ValueError, KeyError) as e:
        raise TransformError(f"Could not encode image as {fmt}: {e}") from e
    return buffer.getvalue()


def render(
    image: Image.Image,
    width: int,
    fmt: str = DEFAULT_FORMAT,
    quality: int = DEFAULT_QUALITY,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """Resizes and encodes a decoded image, yielding the result in chunks."""
    with image:
        thumbnail = resize(image, width)
    with thumbnail:
        data = encode(thumbnail, fmt, quality)
    view = memoryview(data)
    for offset in range(0, len(data), chunk_size):
        yield bytes(view[offset:offset + chunk_size])


def transform(
    source: Iterable[bytes],
    width: Optional[int] = None,
    fmt: str = DEFAULT_FORMAT,
    quality: int = DEFAULT_QUALITY,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """
    Generator yielding the encoded thumbnail in chunks of at most `chunk_size`.
    Errors from the source propagate unchanged; decode and encode errors are
    raised as TransformError.
    """
    try:
        image = decode(source)
        yield from render(image, width or DEFAULT_WIDTH, fmt, quality, chunk_size)
    finally:
        _close(source)


class ThumbnailPipeline:
    """
    One thumbnail transform, advanced one source chunk at a time with pull()
    and consumed with next_chunk().

    The HTTP layer drives pull() itself until the output is ready, checking
    the client connection between chunks, then takes the first output chunk
    before committing to a response so that a failure which happens before
    any byte is written can still be reported as an error status.
    """

    def __init__(
        self,
        source: Iterable[bytes],
        width: Optional[int] = None,
        fmt: str = DEFAULT_FORMAT,
        quality: int = DEFAULT_QUALITY,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.source = source
        self.width = width or DEFAULT_WIDTH
        self.fmt = fmt
        self.quality = quality
        self.chunk_size = chunk_size
        self._chunks = iter(source)
        self._decoder = IncrementalDecoder()
        self._output: Optional[Iterator[bytes]] = None
        self.bytes_sent = 0
        self.closed = False

    @property
    def bytes_received(self) -> int:
        return self._decoder.bytes_fed

    def pull(self) -> bool:
        """
        Feeds the next source chunk to the decoder.
        Returns True while source data remains, False once the output is ready
        or the pipeline is closed.
        """
        if self.closed or self._output is not None:
            return False
        try:
            chunk = next(self._chunks, None)
            if chunk is not None:
                self._decoder.feed(chunk)
                return True
            image = self._decoder.close()
        except Exception:
            self.close()
            raise
        _close(self.source)
        self._output = render(image, self.width, self.fmt, self.quality, self.chunk_size)
        return False

    def next_chunk(self) -> Optional[bytes]:
        """Returns the next output chunk, or None when the image is complete."""
        while self._output is None:
            if self.closed:
                return None
            self.pull()
        if self.closed:
            return None
        try:
            chunk = next(self._output)
        except StopIteration:
            self.close()
            return None
        except Exception:
            self.close()
            raise
        self.bytes_sent += len(chunk)
        return chunk

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.next_chunk()
            if chunk is None:
                return
            yield chunk

    def close(self) -> None:
        """Stops the transform and releases the source, also when it never started."""
        if self.closed:
            return
        self.closed = True
        if self._output is not None:
            self._output.close()
        _close(self.source)
        logger.debug(
            f"[Thumbnail] Closed after {self.bytes_received} bytes in, {self.bytes_sent} bytes out"
        )
