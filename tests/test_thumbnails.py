# tests/test_thumbnails.py
import io
from unittest.mock import patch

import pytest
from PIL import Image, ImageFile

from drivegallery.exceptions import TransformError, TransientError
from drivegallery.thumbnails import (
    DEFAULT_WIDTH,
    ThumbnailPipeline,
    decode,
    resize,
    transform,
)

from conftest import make_image_bytes


def _chunks(data, size=1000):
    return (data[i:i + size] for i in range(0, len(data), size))


def _decode_output(chunks):
    return Image.open(io.BytesIO(b"".join(chunks)))


def test_resizes_to_requested_width_and_keeps_aspect_ratio():
    source = make_image_bytes(1200, 800, fmt="PNG")

    image = _decode_output(transform(_chunks(source), width=300))

    assert image.format == "WEBP"
    assert image.size == (300, 200)


def test_default_width_is_used_without_one():
    source = make_image_bytes(1200, 900, fmt="JPEG")

    image = _decode_output(transform(_chunks(source)))

    assert image.size == (DEFAULT_WIDTH, 450)


def test_output_format_does_not_depend_on_source_format():
    for fmt in ("PNG", "JPEG", "GIF", "BMP"):
        source = make_image_bytes(400, 300, fmt=fmt)
        image = _decode_output(transform(_chunks(source), width=100))
        assert image.format == "WEBP"
        assert image.width == 100


def test_same_input_gives_identical_bytes():
    source = make_image_bytes(640, 480, fmt="JPEG")

    first = b"".join(transform(_chunks(source, 700), width=300))
    second = b"".join(transform(_chunks(source, 3000), width=300))

    assert first == second


def test_transparency_is_kept():
    source = make_image_bytes(200, 100, fmt="PNG", color=(0, 0, 255, 0), mode="RGBA")

    image = _decode_output(transform(_chunks(source), width=50))

    assert image.mode == "RGBA"


def test_jpeg_output_drops_alpha():
    source = make_image_bytes(200, 100, fmt="PNG", color=(0, 0, 255, 128), mode="RGBA")

    image = _decode_output(transform(_chunks(source), width=50, fmt="jpeg"))

    assert image.format == "JPEG"
    assert image.mode == "RGB"


def test_output_is_chunked():
    source = make_image_bytes(800, 600, fmt="PNG")

    chunks = list(transform(_chunks(source), width=600, chunk_size=512))

    assert len(chunks) > 1
    assert all(len(c) <= 512 for c in chunks)


def test_height_never_drops_below_one_pixel():
    image = Image.new("RGB", (1000, 2))

    assert resize(image, 10).size == (10, 1)


def test_corrupt_source_raises_transform_error():
    with pytest.raises(TransformError):
        list(transform([b"definitely not an image"], width=100))


def test_truncated_source_raises_transform_error():
    source = make_image_bytes(400, 300, fmt="PNG")

    with pytest.raises(TransformError):
        decode(_chunks(source[: len(source) // 2]))


def test_source_errors_propagate_unchanged():
    def failing_source():
        yield make_image_bytes(100, 100)[:50]
        raise TransientError("connection reset")

    with pytest.raises(TransientError):
        list(transform(failing_source(), width=50))


def test_decoder_receives_each_chunk_as_it_arrives(fake_store):
    fake_store.add_folder("F", "F")
    fake_store.add_file("img", "img.jpg", "F", content=make_image_bytes(1200, 800, fmt="JPEG"))
    source = fake_store.open_stream("img", 256)
    pulled_when_fed = []
    real_feed = ImageFile.Parser.feed

    def recording_feed(parser, data):
        pulled_when_fed.append(fake_store.chunks_read["img"])
        return real_feed(parser, data)

    with patch.object(ImageFile.Parser, "feed", recording_feed):
        assert ThumbnailPipeline(source, width=100).next_chunk() is not None

    total_chunks = fake_store.chunks_read["img"]
    assert total_chunks > 1
    assert pulled_when_fed[0] == 1
    assert pulled_when_fed == list(range(1, total_chunks + 1))


def test_pull_advances_one_source_chunk_at_a_time(fake_store):
    fake_store.add_folder("F", "F")
    fake_store.add_file("img", "img.jpg", "F", content=make_image_bytes(300, 200, fmt="JPEG"))
    source = fake_store.open_stream("img", 64)

    pipeline = ThumbnailPipeline(source, width=100)
    assert fake_store.chunks_read.get("img") is None

    assert pipeline.pull() is True
    assert fake_store.chunks_read["img"] == 1
    assert pipeline.bytes_received == 64
    assert "img" not in fake_store.closed

    while pipeline.pull():
        pass
    assert "img" in fake_store.closed
    assert pipeline.next_chunk() is not None


def test_closing_mid_download_stops_pulling(fake_store):
    fake_store.add_folder("F", "F")
    fake_store.add_file("img", "img.jpg", "F", content=make_image_bytes(300, 200, fmt="JPEG"))
    source = fake_store.open_stream("img", 64)

    pipeline = ThumbnailPipeline(source, width=100)
    pipeline.pull()
    pipeline.pull()
    pipeline.close()

    assert fake_store.chunks_read["img"] == 2
    assert "img" in fake_store.closed
    assert pipeline.pull() is False
    assert pipeline.next_chunk() is None


def test_closing_before_start_closes_source(fake_store):
    fake_store.add_folder("F", "F")
    fake_store.add_file("img", "img.png", "F", content=make_image_bytes(300, 200))

    def tracked():
        try:
            yield from fake_store.open_stream("img", 64)
        finally:
            tracked.closed = True

    tracked.closed = False
    source = tracked()
    next(source)

    pipeline = ThumbnailPipeline(source, width=100)
    pipeline.close()

    assert tracked.closed is True
    assert pipeline.next_chunk() is None


def test_pipeline_stops_after_close_mid_stream():
    source = make_image_bytes(800, 600, fmt="PNG")
    pipeline = ThumbnailPipeline(_chunks(source), width=600, chunk_size=128)

    assert pipeline.next_chunk() is not None
    pipeline.close()

    assert pipeline.next_chunk() is None
    assert pipeline.closed is True


def test_pipeline_iterates_to_a_complete_image():
    source = make_image_bytes(640, 480)
    pipeline = ThumbnailPipeline(_chunks(source), width=320, chunk_size=256)

    image = _decode_output(pipeline)

    assert image.size == (320, 240)
    assert pipeline.closed is True
    assert pipeline.bytes_sent > 0


def test_pipeline_failure_closes_it():
    pipeline = ThumbnailPipeline([b"garbage"], width=100)

    with pytest.raises(TransformError):
        pipeline.next_chunk()

    assert pipeline.closed is True
