"""File-system backed storage of source images and their lazily rendered variants."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from threading import Lock
from typing import Iterator

from PIL import Image, UnidentifiedImageError

from . import codec, transform
from .allocator import AddressAllocator
from .config import Settings
from .grammar import DEFAULT_GRAMMAR, ParseError, VariantGrammar, canonical_name, parse_variant
from .models import JpegFormat
from .transform import RenderError

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Base exception for artifact store failures."""


class InvalidPathError(StoreError):
    """Raised when a requested path escapes the storage root."""


class ArtifactNotFoundError(StoreError):
    """Raised when a path does not exist or could not be rendered."""


class ArtifactForbiddenError(StoreError):
    """Raised when an operation targets a directory."""


class UndecodableImageError(StoreError):
    """Raised when uploaded bytes are not a readable image."""


class SourceDecodeError(RenderError):
    """Raised when the stored source image cannot be decoded."""


@dataclass(frozen=True)
class Artifact:
    """Bytes of a stored file together with its cache validator."""

    path: Path
    data: bytes
    last_modified: float


@dataclass
class _LockEntry:
    lock: Lock = field(default_factory=Lock)
    holders: int = 0


class PathLocks:
    """Per-path locks created on demand and dropped once nobody holds them."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, path: Path) -> Iterator[None]:
        key = str(path)
        with self._guard:
            entry = self._entries.setdefault(key, _LockEntry())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class ArtifactStore:
    """
    Stores uploads in sharded container directories next to their variants.

    A variant starts as a zero-byte placeholder named after its recipe and is
    rendered from the container's source image the first time it is read.
    """

    def __init__(
        self,
        root_dir: Path,
        *,
        source_filename: str = "source.jpeg",
        metadata_filename: str = "metadata.txt",
        source_quality: int = 75,
        allocator: AddressAllocator | None = None,
        locks: PathLocks | None = None,
        grammar: VariantGrammar = DEFAULT_GRAMMAR,
    ) -> None:
        root_dir.mkdir(parents=True, exist_ok=True)
        self.root_dir = root_dir.resolve()
        self.source_filename = source_filename
        self.metadata_filename = metadata_filename
        self.source_quality = source_quality
        self.allocator = allocator or AddressAllocator(self.root_dir, source_filename)
        self.locks = locks if locks is not None else PathLocks()
        self.grammar = grammar

    @classmethod
    def from_settings(cls, settings: Settings, locks: PathLocks | None = None) -> "ArtifactStore":
        root_dir = settings.store_root_dir.resolve()
        allocator = AddressAllocator(
            root_dir,
            settings.store_source_filename,
            fan_out=settings.store_fan_out,
            token_bytes=settings.store_token_bytes,
            create_attempts=settings.store_create_attempts,
        )
        return cls(
            root_dir,
            source_filename=settings.store_source_filename,
            metadata_filename=settings.store_metadata_filename,
            source_quality=settings.store_source_quality,
            allocator=allocator,
            locks=locks,
        )

    def resolve_path(self, url_path: str) -> Path:
        """Map a URL path onto the storage tree, preventing path traversal."""
        candidate = (self.root_dir / url_path.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root_dir)
        except ValueError as exc:
            raise InvalidPathError(f"Invalid path supplied: {url_path!r}") from exc
        return candidate

    def url_path(self, file_path: Path) -> str:
        """Return the URL path under which ``file_path`` is served."""
        return "/" + file_path.relative_to(self.root_dir).as_posix()

    def is_reserved(self, file_path: Path) -> bool:
        return file_path.name in {self.source_filename, self.metadata_filename}

    def put(self, data: bytes) -> Path:
        """Store uploaded image bytes as the source of a brand new container."""
        try:
            with Image.open(BytesIO(data)) as upload:
                upload.load()
                image = upload.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise UndecodableImageError("Could not decode image.") from exc

        source_path, handle = self.allocator.allocate()
        try:
            with handle:
                codec.encode(image, JpegFormat(quality=self.source_quality), handle)
        except codec.EncodeError:
            shutil.rmtree(source_path.parent)
            raise

        logger.info(
            "Stored uploaded source image",
            extra={"path": str(source_path), "size": f"{image.width}x{image.height}"},
        )
        return source_path

    def _existing_file(self, file_path: Path) -> os.stat_result:
        try:
            info = file_path.stat()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"{file_path} does not exist.") from exc
        if stat.S_ISDIR(info.st_mode):
            raise ArtifactForbiddenError(f"{file_path} is a directory.")
        return info

    def reserve(self, source_path: Path, segment: str) -> Path:
        """
        Create (or reset) the zero-byte placeholder for ``segment`` next to ``source_path``.

        Raises ParseError before touching the file system if ``segment`` is not
        a valid variant.
        """
        variant = parse_variant(segment, self.grammar)
        self._existing_file(source_path)

        placeholder = source_path.parent / canonical_name(variant)
        with self.locks.hold(placeholder):
            placeholder.open("wb").close()

        logger.info(
            "Reserved variant placeholder",
            extra={"path": str(placeholder), "requested": segment},
        )
        return placeholder

    def write_metadata(self, file_path: Path, text: str) -> Path:
        """Overwrite the metadata sidecar of the container holding ``file_path``."""
        self._existing_file(file_path)
        metadata_path = file_path.parent / self.metadata_filename
        metadata_path.write_text(text, encoding="utf-8")
        return metadata_path

    def read(self, file_path: Path) -> Artifact:
        """Return the bytes stored at ``file_path``, rendering a placeholder first if needed."""
        if self.is_reserved(file_path):
            info = self._existing_file(file_path)
            return Artifact(path=file_path, data=self._read_bytes(file_path), last_modified=info.st_mtime)

        # readers of one variant queue behind whoever is rendering it
        with self.locks.hold(file_path):
            info = self._existing_file(file_path)
            if info.st_size > 0:
                return Artifact(path=file_path, data=self._read_bytes(file_path), last_modified=info.st_mtime)
            return self._materialize(file_path)

    @staticmethod
    def _read_bytes(file_path: Path) -> bytes:
        try:
            return file_path.read_bytes()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"{file_path} does not exist.") from exc

    def _materialize(self, placeholder: Path) -> Artifact:
        try:
            variant = parse_variant(placeholder.name, self.grammar)
        except ParseError as exc:
            logger.warning(
                "Removing placeholder with an unparseable name",
                extra={"path": str(placeholder)},
            )
            placeholder.unlink(missing_ok=True)
            raise ArtifactNotFoundError(f"{placeholder} is not a valid variant.") from exc

        source_path = placeholder.parent / self.source_filename
        buffer = BytesIO()
        try:
            rendered = transform.apply(self._load_source(source_path), variant.transformation)
            codec.encode(rendered, variant.output_format, buffer)
        except RenderError as exc:
            logger.exception(
                "Failed to render variant",
                extra={"path": str(placeholder), "variant": canonical_name(variant)},
            )
            raise ArtifactNotFoundError(f"{placeholder} could not be rendered.") from exc

        try:
            handle = placeholder.open("r+b")
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"{placeholder} was removed while rendering.") from exc
        with handle:
            handle.truncate()
            handle.write(buffer.getvalue())
            handle.flush()
            handle.seek(0)
            data = handle.read()

        logger.info(
            "Rendered variant",
            extra={"path": str(placeholder), "variant": canonical_name(variant), "bytes": len(data)},
        )
        # the file's mtime is the reservation time, not the render time
        return Artifact(path=placeholder, data=data, last_modified=time.time())

    def _load_source(self, source_path: Path) -> Image.Image:
        try:
            with Image.open(source_path) as source:
                source.load()
                return source.convert("RGB")
        except FileNotFoundError as exc:
            raise SourceDecodeError(f"Source image {source_path} is missing.") from exc
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise SourceDecodeError(f"Source image {source_path} could not be decoded.") from exc

    def delete(self, file_path: Path) -> bool:
        """
        Remove ``file_path``.

        Deleting a source image removes its whole container directory and
        returns True; any other file is removed on its own.
        """
        self._existing_file(file_path)
        if file_path.name == self.source_filename and file_path.parent != self.root_dir:
            shutil.rmtree(file_path.parent)
            logger.info("Deleted container directory", extra={"path": str(file_path.parent)})
            return True

        try:
            file_path.unlink()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"{file_path} does not exist.") from exc
        logger.info("Deleted file", extra={"path": str(file_path)})
        return False
