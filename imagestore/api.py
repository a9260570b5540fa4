"""HTTP route definitions for the image store service."""

from __future__ import annotations

import logging
from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from .allocator import AllocationError
from .codec import EncodeError, guess_media_type
from .config import Settings, get_settings
from .grammar import ParseError
from .models import DeleteResponse
from .storage import (
    ArtifactForbiddenError,
    ArtifactNotFoundError,
    ArtifactStore,
    InvalidPathError,
    PathLocks,
    UndecodableImageError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "service": "imagestore"}


def get_path_locks(request: Request) -> PathLocks:
    """Return the render locks shared by every request of the app."""
    locks = getattr(request.app.state, "path_locks", None)
    if locks is None:
        logger.error("Path locks requested before initialization.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Image store is not available.",
        )
    return locks


def get_store(
    settings: Settings = Depends(get_settings),
    locks: PathLocks = Depends(get_path_locks),
) -> ArtifactStore:
    """Dependency provider for ArtifactStore."""
    return ArtifactStore.from_settings(settings, locks=locks)


def _resolve(store: ArtifactStore, url_path: str) -> Path:
    try:
        return store.resolve_path(url_path)
    except InvalidPathError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid image path supplied.",
        ) from exc


def _store_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ArtifactForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden.")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")


def _not_modified(request: Request, last_modified: float) -> bool:
    header = request.headers.get("if-modified-since")
    if not header:
        return False
    try:
        since = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return False
    if since.tzinfo is None:
        # "-0000" dates parse without a zone; they are UTC
        since = since.replace(tzinfo=timezone.utc)
    return int(last_modified) <= since.timestamp()


@router.put("/", status_code=status.HTTP_303_SEE_OTHER)
async def upload_image(
    request: Request,
    store: ArtifactStore = Depends(get_store),
) -> RedirectResponse:
    """Store the request body as the source image of a new container."""
    body = await request.body()
    if not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No data sent.")

    try:
        source_path = await run_in_threadpool(store.put, body)
    except UndecodableImageError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Could not decode image.",
        ) from exc
    except AllocationError as exc:
        logger.error("Could not allocate a container for an upload", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create file.",
        ) from exc
    except EncodeError as exc:
        logger.exception("Could not save uploaded image")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not save image.",
        ) from exc

    return RedirectResponse(store.url_path(source_path), status_code=status.HTTP_303_SEE_OTHER)


@router.post("/{file_path:path}", status_code=status.HTTP_303_SEE_OTHER)
def update_image(
    file_path: str,
    format: str | None = Form(default=None),
    metadata: str | None = Form(default=None),
    store: ArtifactStore = Depends(get_store),
) -> RedirectResponse:
    """Reserve a derived variant of an image, or replace its container's metadata."""
    target = _resolve(store, file_path)

    try:
        if format is not None:
            result = store.reserve(target, format)
        elif metadata is not None:
            result = store.write_metadata(target, metadata)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Either 'format' or 'metadata' is required.",
            )
    except ParseError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (ArtifactNotFoundError, ArtifactForbiddenError) as exc:
        raise _store_error(exc) from exc

    return RedirectResponse(store.url_path(result), status_code=status.HTTP_303_SEE_OTHER)


@router.get("/{file_path:path}")
def fetch_image(
    file_path: str,
    request: Request,
    store: ArtifactStore = Depends(get_store),
) -> Response:
    """Serve a stored file, rendering a reserved variant on first access."""
    target = _resolve(store, file_path)

    try:
        artifact = store.read(target)
    except (ArtifactNotFoundError, ArtifactForbiddenError) as exc:
        raise _store_error(exc) from exc

    headers = {"Last-Modified": formatdate(artifact.last_modified, usegmt=True)}
    if _not_modified(request, artifact.last_modified):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    return Response(
        content=artifact.data,
        media_type=guess_media_type(artifact.path),
        headers=headers,
    )


@router.delete("/{file_path:path}", response_model=DeleteResponse)
def delete_image(
    file_path: str,
    store: ArtifactStore = Depends(get_store),
) -> DeleteResponse:
    """Delete a file; deleting a source image removes its whole container."""
    target = _resolve(store, file_path)

    try:
        cascade = store.delete(target)
    except (ArtifactNotFoundError, ArtifactForbiddenError) as exc:
        raise _store_error(exc) from exc

    return DeleteResponse(path=store.url_path(target), cascade=cascade)
