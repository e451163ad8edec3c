from __future__ import annotations

import json
import os
from types import MappingProxyType
from typing import Iterator, Mapping

from .errors import CatalogError


class Catalog:
    """Read-only key code -> description mapping, loaded once at startup."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[str, str]):
        self._entries = MappingProxyType(
            {str(code): str(text) for code, text in entries.items()}
        )

    def describe(self, key_code: str) -> str:
        return self._entries.get(key_code, key_code)

    def __contains__(self, key_code: object) -> bool:
        return key_code in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Mapping[str, str]:
        return self._entries


def load_catalog(path: str) -> Catalog:
    if not os.path.isfile(path):
        raise CatalogError(f"Key code catalog not found: {path}")
    with open(path, "r", encoding="utf-8") as fh:
        try:
            raw = json.load(fh)
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Key code catalog is not valid JSON: {path}") from exc
    if not isinstance(raw, dict):
        raise CatalogError("Key code catalog must be a JSON object")
    return Catalog(raw)
