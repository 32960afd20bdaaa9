"""
Weight Table - relative importance of checks.

Unlisted names weigh DEFAULT_WEIGHT. The table is read-only while a run
is in progress.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_WEIGHT = 1


class WeightTable:
    """Maps check name -> positive integer weight."""

    def __init__(
        self,
        weights: Optional[Mapping[str, int]] = None,
        default: int = DEFAULT_WEIGHT,
    ):
        if default <= 0:
            raise ValueError(f"default weight must be > 0, got {default}")
        table: dict[str, int] = {}
        for name, weight in (weights or {}).items():
            if isinstance(weight, bool) or not isinstance(weight, int) or weight <= 0:
                raise ValueError(f"weight for {name!r} must be a positive integer, got {weight!r}")
            table[name] = weight
        self._weights = MappingProxyType(table)
        self.default = default

    def weight_of(self, name: str) -> int:
        return self._weights.get(name, self.default)

    def __contains__(self, name: str) -> bool:
        return name in self._weights

    def as_dict(self) -> dict[str, int]:
        return dict(self._weights)

    def merged(self, overrides: Mapping[str, int]) -> "WeightTable":
        """New table with overrides applied on top of this one."""
        combined = dict(self._weights)
        combined.update(overrides)
        return WeightTable(combined, default=self.default)
