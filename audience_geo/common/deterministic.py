"""Helpers for deterministic ordering and serialisation."""

from __future__ import annotations

from typing import Iterable, TypeVar

T = TypeVar("T")


def unique_in_order(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def chunked(values: list[T], size: int) -> Iterable[list[T]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]
