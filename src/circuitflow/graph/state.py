"""Typed state schemas and the reducers that merge node output into state.

A schema maps field names to :class:`StateField` definitions. Every field
has a total default, and every reducer tolerates a missing old or new value,
so ``schema.merge(state, {})`` always returns an equal state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter

from circuitflow.core.errors import StateFieldError

logger = logging.getLogger(__name__)

State = dict[str, Any]
Reducer = Callable[[Any, Any], Any]


def replace(_old: Any, new: Any) -> Any:
    """Last write wins."""
    return new


def append(old: list[Any] | None, new: list[Any] | None) -> list[Any]:
    """Concatenate lists; ``None`` on either side counts as empty."""
    if new is None:
        return list(old or [])
    if old is None:
        return list(new)
    return [*old, *new]


def merge_dict(old: Mapping[str, Any] | None, new: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(old or {})
    merged.update(new or {})
    return merged


def add(old: float | None, new: float | None) -> float:
    return (old or 0) + (new or 0)


def _none() -> None:
    return None


@dataclass(frozen=True, slots=True)
class StateField:
    """Definition of a single state field.

    Attributes:
        default: Zero-argument factory producing the initial value.
        reducer: ``reducer(old, new) -> merged``.
        type_: Value type, used to dump/load checkpoints through pydantic.
    """

    default: Callable[[], Any] = _none
    reducer: Reducer = replace
    type_: Any = Any

    def adapter(self) -> TypeAdapter[Any]:
        return TypeAdapter(self.type_)


@dataclass(frozen=True)
class StateSchema:
    """An immutable collection of named :class:`StateField` definitions."""

    fields: Mapping[str, StateField]
    _adapters: dict[str, TypeAdapter[Any]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", dict(self.fields))
        for name, definition in self.fields.items():
            if not callable(definition.default):
                raise TypeError(f"State field '{name}' default must be a zero-argument callable")
            self._adapters[name] = definition.adapter()

    @classmethod
    def of(cls, **fields: StateField) -> StateSchema:
        return cls(fields)

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def names(self) -> frozenset[str]:
        return frozenset(self.fields)

    def undeclared(self, keys: Iterable[str]) -> list[str]:
        return [key for key in keys if key not in self.fields]

    def check_fields(self, keys: Iterable[str], context: str = "") -> None:
        unknown = self.undeclared(keys)
        if unknown:
            raise StateFieldError(unknown, context)

    def initial(self) -> State:
        """Build a state from every field's default."""
        return {name: definition.default() for name, definition in self.fields.items()}

    def merge(self, state: Mapping[str, Any], partial: Mapping[str, Any] | None) -> State:
        """Apply a partial update through each field's reducer.

        Fields absent from ``partial`` are carried over unchanged. The input
        state is never mutated.
        """
        merged = dict(state)
        if not partial:
            return merged

        self.check_fields(partial.keys(), "merge")
        for name, value in partial.items():
            merged[name] = self.fields[name].reducer(merged.get(name), value)
        return merged

    def overlay(self, state: Mapping[str, Any], snapshot: Mapping[str, Any]) -> State:
        """Replace declared fields with snapshot values, bypassing reducers."""
        overlaid = dict(state)
        for name, value in snapshot.items():
            if name in self.fields:
                overlaid[name] = value
        return overlaid

    def dump(self, state: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a state to JSON-safe data."""
        return {
            name: self._adapters[name].dump_python(value, mode="json")
            for name, value in state.items()
            if name in self.fields
        }

    def load(self, data: Mapping[str, Any]) -> State:
        """Rebuild a state from dumped data.

        Unknown keys are dropped (the schema may have shrunk since the data
        was written); missing keys fall back to their defaults.
        """
        state = self.initial()
        for name, value in data.items():
            adapter = self._adapters.get(name)
            if adapter is None:
                logger.debug(f"Dropping unknown state field on load: {name}")
                continue
            state[name] = adapter.validate_python(value)
        return state
