"""Allocation of fresh, sharded container directories for new uploads."""

from __future__ import annotations

import base64
import logging
import secrets
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


class AllocationError(RuntimeError):
    """Raised when no unused container could be created within the attempt budget."""


def random_token(num_bytes: int) -> str:
    """Return a URL-safe base64 token built from ``num_bytes`` random bytes."""
    return base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii").rstrip("=")


def shard(token: str, fan_out: int) -> Path:
    """
    Split a token into nested directories.

    The first ``fan_out`` characters each become one directory level and the
    remainder forms the last one, e.g. ``shard("abcdefg", 3) -> a/b/c/defg``.
    """
    if len(token) <= fan_out:
        raise ValueError(f"Token too short for {fan_out} shard levels: {token!r}")
    return Path(*token[:fan_out], token[fan_out:])


class AddressAllocator:
    """Creates a new container directory holding an exclusively created source file."""

    def __init__(
        self,
        root_dir: Path,
        source_filename: str,
        *,
        fan_out: int = 3,
        token_bytes: int = 18,
        create_attempts: int = 10,
    ) -> None:
        self.root_dir = root_dir
        self.source_filename = source_filename
        self.fan_out = fan_out
        self.token_bytes = token_bytes
        self.create_attempts = create_attempts

    def _new_token(self) -> str:
        return random_token(self.token_bytes)

    def allocate(self) -> tuple[Path, BinaryIO]:
        """Return the path of a newly created source file and a handle open for writing."""
        for attempt in range(1, self.create_attempts + 1):
            container_dir = self.root_dir / shard(self._new_token(), self.fan_out)
            container_dir.mkdir(parents=True, exist_ok=True)
            source_path = container_dir / self.source_filename
            try:
                handle = source_path.open("xb")
            except FileExistsError:
                logger.warning(
                    "Container token collision; retrying with a fresh token",
                    extra={"path": str(source_path), "attempt": attempt},
                )
                continue
            return source_path, handle

        logger.error(
            "Exceeded attempts to create a container",
            extra={"attempts": self.create_attempts, "root_dir": str(self.root_dir)},
        )
        raise AllocationError(f"Exceeded {self.create_attempts} attempts to create a container.")
