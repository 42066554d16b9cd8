"""
keyed_store.py
==============

String-keyed record store used for every cross-reference table of a schedule
(antenna codes, station positions, sources, source aliases).

Semantics
---------
- Keys are short ASCII strings (1-char antenna codes, 2-char station ids,
  8-char IAU names, common names).
- Inserting a key that is already present does **not** overwrite it: the first
  record stays visible to ``get`` and the key is listed in ``duplicates``.
  Callers must not rely on update-by-reinsert.
- Iteration follows insertion order, so anything derived from a store is
  deterministic across runs.
- There is no deletion or resize.
"""

from __future__ import annotations

from typing import Dict, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

__all__ = ["KeyedStore"]

T = TypeVar("T")


class KeyedStore(Generic[T]):
    """
    Insertion-ordered mapping ``key -> record`` with first-wins duplicates.

    Parameters
    ----------
    name : str
        Human readable store name, used in error messages.
    record_type : type or None
        If given, ``insert`` rejects records that are not instances of it.
    """

    def __init__(self, name: str, record_type: Optional[Type[T]] = None) -> None:
        self.name = name
        self.record_type = record_type
        self._records: Dict[str, T] = {}
        self._shadowed: Dict[str, List[T]] = {}

    def insert(self, key: str, record: T) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError(f"{self.name}: key must be a non-empty string")
        if self.record_type is not None and not isinstance(record, self.record_type):
            raise TypeError(
                f"{self.name}: expected {self.record_type.__name__}, "
                f"got {type(record).__name__}"
            )
        if key in self._records:
            self._shadowed.setdefault(key, []).append(record)
            return
        self._records[key] = record

    def get(self, key: str) -> Optional[T]:
        return self._records.get(key)

    @property
    def duplicates(self) -> Dict[str, int]:
        """Keys inserted more than once -> total number of inserts."""
        return {k: len(v) + 1 for k, v in self._shadowed.items()}

    def keys(self) -> List[str]:
        return list(self._records)

    def items(self) -> List[Tuple[str, T]]:
        return list(self._records.items())

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"KeyedStore({self.name!r}, size={len(self)})"
