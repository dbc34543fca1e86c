"""
Results of comparing two order sets.
"""

from dataclasses import dataclass, field
from typing import Mapping

from .order import Order
from .snapshot import Tombstone


@dataclass(frozen=True)
class OrderDiff:
    """
    Classified changes between two order sets.

    An order appears in at most one of the three collections.
    """

    added: tuple[Order, ...] = ()
    removed: tuple[Order, ...] = ()
    shipped: tuple[Order, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "added", tuple(self.added))
        object.__setattr__(self, "removed", tuple(self.removed))
        object.__setattr__(self, "shipped", tuple(self.shipped))

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.shipped)

    def counts(self) -> dict[str, int]:
        return {"added": len(self.added), "removed": len(self.removed), "shipped": len(self.shipped)}


@dataclass(frozen=True)
class ReconcileResult:
    """
    Output of the tombstone-aware reconciliation.

    Attributes:
        diff: Diff reported to the user (``removed`` is always empty)
        tombstones: Tombstone map to persist
        duplicate_deletions: Ids removed again while already tombstoned
        reappeared: Ids that came back and left the tombstone map
        shipped_after_deletion: Tombstoned ids that came back shipped
    """

    diff: OrderDiff
    tombstones: Mapping[str, Tombstone] = field(default_factory=dict)
    duplicate_deletions: tuple[str, ...] = ()
    reappeared: tuple[str, ...] = ()
    shipped_after_deletion: tuple[str, ...] = ()
