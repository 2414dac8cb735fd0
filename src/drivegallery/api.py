"""
HTTP routes

- Album listing with cover images (cached)
- Password file lookup and content
- Paged image listing, forwarding the store's page token
- Thumbnails, resized and re-encoded on the fly
- Raw file download and folder image listing
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .albums import AlbumService
from .config import Settings
from .storage.dto import EntryPage
from .streaming import next_or_none, pump
from .thumbnails import THUMBNAIL_CACHE_CONTROL, ThumbnailPipeline

router = APIRouter()

# Status logged for a request the client abandoned; it never reaches the client.
CLIENT_CLOSED_REQUEST = 499


class PageRequest(BaseModel):
    pageToken: Optional[str] = None


# ============================================
# Dependencies
# ============================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_album_service(request: Request) -> AlbumService:
    return request.app.state.album_service


def _page_response(page: EntryPage) -> dict:
    return {
        "files": [
            e.model_dump(by_alias=True, mode="json", exclude_none=True) for e in page.entries
        ],
        "nextPageToken": page.next_page_token,
    }


# ============================================
# Albums and passwords
# ============================================

@router.get("/api/drive/folders/{root_id}")
async def list_albums(root_id: str, service: AlbumService = Depends(get_album_service)):
    albums = await service.list_albums(root_id)
    return [album.model_dump(by_alias=True) for album in albums]


@router.get("/api/drive/password/{folder_id}")
async def get_password_file(folder_id: str, service: AlbumService = Depends(get_album_service)):
    return {"passwordFileId": await service.find_password_file(folder_id)}


@router.get("/api/drive/password/content/{file_id}", response_class=PlainTextResponse)
async def get_password_content(file_id: str, service: AlbumService = Depends(get_album_service)):
    return PlainTextResponse(await service.read_password(file_id))


# ============================================
# Image listings
# ============================================

@router.get("/api/drive/images/{folder_id}")
async def list_images(
    folder_id: str,
    pageToken: Optional[str] = Query(None, description="Opaque cursor from a previous page"),
    service: AlbumService = Depends(get_album_service),
):
    return _page_response(await service.list_images(folder_id, pageToken))


@router.post("/folder-images/{folder_id}")
async def list_images_post(
    folder_id: str,
    body: Optional[PageRequest] = Body(None),
    service: AlbumService = Depends(get_album_service),
):
    logging.debug(f"Received pageToken for folder '{folder_id}': {body.pageToken if body else None}")
    page_token = body.pageToken if body else None
    return _page_response(await service.list_images(folder_id, page_token))


# ============================================
# Thumbnails
# ============================================

@router.get("/thumbnail/{file_id}")
async def get_thumbnail(
    file_id: str,
    request: Request,
    width: Optional[int] = Query(None, ge=1, description="Target width in pixels"),
    size: Optional[int] = Query(None, ge=1, description="Alias of width"),
    service: AlbumService = Depends(get_album_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Streams a resized copy of an image, re-encoded to the configured format.

    Source chunks are decoded as they arrive, and the client connection is
    checked between them so that a disconnect stops the download. The first
    output chunk is produced before the response starts, so a missing file
    or an undecodable image still gets a proper error status.
    """
    target_width = width or size or settings.THUMBNAIL_DEFAULT_WIDTH
    if target_width > settings.THUMBNAIL_MAX_WIDTH:
        raise HTTPException(
            status_code=422,
            detail=f"width cannot exceed {settings.THUMBNAIL_MAX_WIDTH}",
        )

    source = service.store.open_stream(file_id, settings.STREAM_CHUNK_SIZE)
    pipeline = ThumbnailPipeline(
        source,
        width=target_width,
        fmt=settings.THUMBNAIL_FORMAT,
        quality=settings.THUMBNAIL_QUALITY,
        chunk_size=settings.STREAM_CHUNK_SIZE,
    )
    try:
        while await run_in_threadpool(pipeline.pull):
            if await request.is_disconnected():
                logging.info(
                    f"Client left while thumbnail '{file_id}' was decoding, after {pipeline.bytes_received} bytes."
                )
                pipeline.close()
                return Response(status_code=CLIENT_CLOSED_REQUEST)
        first = await run_in_threadpool(pipeline.next_chunk)
    except BaseException:
        pipeline.close()
        raise

    return StreamingResponse(
        pump(pipeline.next_chunk, pipeline.close, first, label=f"thumbnail '{file_id}'"),
        media_type=settings.THUMBNAIL_MIME_TYPE,
        headers={"Cache-Control": THUMBNAIL_CACHE_CONTROL},
    )


# ============================================
# Downloads
# ============================================

async def _folder_files(service: AlbumService, folder_id: str) -> dict:
    files = await service.list_folder_images(folder_id)
    return {"files": [{"id": f.id, "name": f.name} for f in files]}


@router.get("/api/download/{item_id}")
async def download(
    item_id: str,
    service: AlbumService = Depends(get_album_service),
    settings: Settings = Depends(get_app_settings),
):
    """Raw bytes of a file, or the image list of a folder."""
    meta = await service.get_metadata(item_id)
    if meta.is_folder:
        return await _folder_files(service, item_id)

    source = service.store.open_stream(item_id, settings.STREAM_CHUNK_SIZE)
    try:
        first = await run_in_threadpool(next_or_none, source)
    except BaseException:
        source.close()
        raise

    return StreamingResponse(
        pump(lambda: next_or_none(source), source.close, first, label=f"download '{item_id}'"),
        media_type=meta.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(meta.name)}"},
    )


@router.post("/download-folder/{folder_id}")
async def download_folder(folder_id: str, service: AlbumService = Depends(get_album_service)):
    return await _folder_files(service, folder_id)


# ============================================
# Service
# ============================================

@router.get("/", response_class=PlainTextResponse)
async def root():
    return "Backend running! Use /api/drive/folders/:rootId to browse albums."


@router.get("/health", response_class=PlainTextResponse)
async def health():
    return "OK"


@router.get("/api/cache/stats")
async def cache_stats(service: AlbumService = Depends(get_album_service)):
    return JSONResponse(content={"success": True, "stats": service.cache.stats()})
