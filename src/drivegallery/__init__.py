"""Google Drive folders served as photo albums: covers, paged listings and thumbnails."""

__version__ = "0.1.0"
