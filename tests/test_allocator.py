"""Tests for container allocation and directory sharding."""

from __future__ import annotations

import logging
import string
from pathlib import Path

import pytest

from imagestore.allocator import AddressAllocator, AllocationError, random_token, shard

URLSAFE_ALPHABET = set(string.ascii_letters + string.digits + "-_")


def test_random_token_is_urlsafe():
    token = random_token(18)

    assert len(token) == 24
    assert set(token) <= URLSAFE_ALPHABET


def test_random_tokens_differ():
    assert len({random_token(18) for _ in range(50)}) == 50


@pytest.mark.parametrize(
    ("token", "fan_out", "expected"),
    [
        ("abcdefg", 3, Path("a/b/c/defg")),
        ("abcdefg", 1, Path("a/bcdefg")),
        ("abcdefg", 0, Path("abcdefg")),
    ],
)
def test_shard(token, fan_out, expected):
    assert shard(token, fan_out) == expected


def test_shard_rejects_short_tokens():
    with pytest.raises(ValueError):
        shard("abc", 3)


def test_allocate_creates_sharded_source_file(tmp_path: Path) -> None:
    allocator = AddressAllocator(tmp_path, "source.jpeg")

    source_path, handle = allocator.allocate()
    with handle:
        handle.write(b"data")

    relative = source_path.relative_to(tmp_path)
    assert relative.name == "source.jpeg"
    assert [len(part) for part in relative.parts[:-1]] == [1, 1, 1, 21]
    assert source_path.read_bytes() == b"data"


def test_allocate_retries_on_collision(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    allocator = AddressAllocator(tmp_path, "source.jpeg")
    tokens = iter(["taken-token", "taken-token", "fresh-token"])
    monkeypatch.setattr(allocator, "_new_token", lambda: next(tokens))

    first_path, first_handle = allocator.allocate()
    first_handle.close()
    with caplog.at_level(logging.WARNING):
        second_path, second_handle = allocator.allocate()
    second_handle.close()

    assert first_path == tmp_path / "t" / "a" / "k" / "en-token" / "source.jpeg"
    assert second_path == tmp_path / "f" / "r" / "e" / "sh-token" / "source.jpeg"
    assert "Container token collision; retrying with a fresh token" in caplog.text


def test_allocate_gives_up_after_attempt_budget(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    allocator = AddressAllocator(tmp_path, "source.jpeg", create_attempts=4)
    calls = []

    def _constant_token() -> str:
        calls.append(1)
        return "always-the-same"

    monkeypatch.setattr(allocator, "_new_token", _constant_token)
    _, handle = allocator.allocate()
    handle.close()
    calls.clear()

    with caplog.at_level(logging.ERROR):
        with pytest.raises(AllocationError):
            allocator.allocate()

    assert len(calls) == 4
    assert "Exceeded attempts to create a container" in caplog.text
