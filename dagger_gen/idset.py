"""Insertion-ordered, immutable set of string ids.

Every confirmation collection (confirmed dials, NPC ids, adversary names,
item keys, echo ids) is an OrderedIdSet. Mutating methods return a new set,
so a state snapshot holding one can be shared safely.

Serialized form is a plain JSON array in insertion order:

    OrderedIdSet(["a", "b"]).serialize()  → ["a", "b"]
    OrderedIdSet.deserialize(["a", "b", "a"])  → OrderedIdSet(['a', 'b'])

Pydantic models can declare a field of this type directly; it validates from
any iterable of strings and dumps back to a list.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema


class OrderedIdSet:
    __slots__ = ("_ids",)

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids: dict[str, None] = dict.fromkeys(ids)

    # ------------------------------------------------------------------
    # Set operations (non-mutating)
    # ------------------------------------------------------------------

    def add(self, item: str) -> OrderedIdSet:
        if item in self._ids:
            return self
        return OrderedIdSet([*self._ids, item])

    def discard(self, item: str) -> OrderedIdSet:
        if item not in self._ids:
            return self
        return OrderedIdSet(i for i in self._ids if i != item)

    def intersect(self, allowed: Iterable[str]) -> OrderedIdSet:
        """Keep only ids present in `allowed`, preserving this set's order."""
        keep = set(allowed)
        return OrderedIdSet(i for i in self._ids if i in keep)

    def issubset(self, other: Iterable[str]) -> bool:
        return set(self._ids) <= set(other)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> list[str]:
        return list(self._ids)

    @classmethod
    def deserialize(cls, data: Iterable[str] | None) -> OrderedIdSet:
        return cls(data or ())

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __contains__(self, item: object) -> bool:
        return item in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, OrderedIdSet):
            return set(self._ids) == set(other._ids)
        if isinstance(other, (set, frozenset)):
            return set(self._ids) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._ids))

    def __repr__(self) -> str:
        return f"OrderedIdSet({list(self._ids)!r})"

    # ------------------------------------------------------------------
    # Pydantic integration
    # ------------------------------------------------------------------

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        from_list = core_schema.no_info_after_validator_function(
            cls.deserialize, handler.generate_schema(list[str])
        )
        return core_schema.json_or_python_schema(
            json_schema=from_list,
            python_schema=core_schema.union_schema(
                [core_schema.is_instance_schema(cls), from_list]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: value.serialize()
            ),
        )
