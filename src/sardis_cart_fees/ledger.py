"""
Fee ledger: the ordered set of adjustments attached to one cart.

The ledger is the only state the engine owns. It is immutable; a pass
builds a new ledger with ``merge_pass`` and the engine swaps it onto the
session context in one assignment.

Commit rule (remove-then-add):
    1. drop every entry whose name any configured rule can emit,
       plus every name written in this pass
    2. append the fresh entries in phase order
    3. collapse any remaining duplicate names (foreign writers) to the
       last occurrence and report them as healed
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sardis_cart_fees.exceptions import FeeSignError
from sardis_cart_fees.money import ZERO, round_money, to_money

logger = logging.getLogger(__name__)


class FeeKind(str, Enum):
    """Kinds of derived cart adjustments."""
    DISCOUNT = "discount"
    SURCHARGE = "surcharge"


@dataclass(frozen=True)
class FeeEntry:
    """A named, signed adjustment in the ledger."""
    name: str
    kind: FeeKind
    amount: Decimal
    taxable: bool = True
    rule_id: str = ""  # empty for fees written outside the engine

    def __post_init__(self) -> None:
        amount = to_money(self.amount)
        object.__setattr__(self, "amount", amount)
        if not self.name:
            raise ValueError("Fee name cannot be empty")
        if self.kind == FeeKind.DISCOUNT and amount > ZERO:
            raise FeeSignError(self.name, self.kind.value, amount)
        if self.kind == FeeKind.SURCHARGE and amount < ZERO:
            raise FeeSignError(self.name, self.kind.value, amount)

    @property
    def is_managed(self) -> bool:
        return bool(self.rule_id)

    def to_row(self, currency: str = "USD") -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "amount": str(self.amount),
            "display_amount": str(round_money(self.amount, currency)),
            "taxable": self.taxable,
        }


class FeeLedger:
    """Immutable, ordered sequence of fee entries."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[FeeEntry] = ()):
        self._entries: Tuple[FeeEntry, ...] = tuple(entries)

    @property
    def entries(self) -> Tuple[FeeEntry, ...]:
        return self._entries

    @property
    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def get(self, name: str) -> Optional[FeeEntry]:
        """Last entry written under ``name``, if any."""
        for entry in reversed(self._entries):
            if entry.name == name:
                return entry
        return None

    def of_kind(self, kind: FeeKind) -> List[FeeEntry]:
        return [entry for entry in self._entries if entry.kind == kind]

    @property
    def discount_total(self) -> Decimal:
        """Magnitude of all discount entries (non-negative)."""
        return ZERO - sum((e.amount for e in self.of_kind(FeeKind.DISCOUNT)), ZERO)

    @property
    def surcharge_total(self) -> Decimal:
        return sum((e.amount for e in self.of_kind(FeeKind.SURCHARGE)), ZERO)

    @property
    def net_adjustment(self) -> Decimal:
        return sum((e.amount for e in self._entries), ZERO)

    @property
    def has_surcharge(self) -> bool:
        return any(e.kind == FeeKind.SURCHARGE for e in self._entries)

    def duplicate_names(self) -> List[str]:
        seen = set()
        dupes: List[str] = []
        for name in self.names:
            if name in seen and name not in dupes:
                dupes.append(name)
            seen.add(name)
        return dupes

    def without(self, names: Iterable[str]) -> "FeeLedger":
        drop = set(names)
        return FeeLedger(e for e in self._entries if e.name not in drop)

    def with_entries(self, entries: Iterable[FeeEntry]) -> "FeeLedger":
        return FeeLedger(self._entries + tuple(entries))

    def deduplicated(self) -> "FeeLedger":
        """Keep only the last entry written under each name, in order."""
        last_index = {entry.name: i for i, entry in enumerate(self._entries)}
        return FeeLedger(
            e for i, e in enumerate(self._entries) if last_index[e.name] == i
        )

    def as_rows(self, currency: str = "USD") -> List[Dict[str, Any]]:
        return [entry.to_row(currency) for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FeeEntry]:
        return iter(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeeLedger):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        return f"FeeLedger({list(self._entries)!r})"


EMPTY_LEDGER = FeeLedger()


def merge_pass(
    previous: FeeLedger,
    fresh: Sequence[FeeEntry],
    managed_names: Iterable[str],
    managed_rule_ids: Iterable[str] = (),
) -> Tuple[FeeLedger, Tuple[str, ...]]:
    """
    Build the ledger a pass commits.

    Args:
        previous: Ledger currently held for the session
        fresh: Entries produced this pass, discount phase first
        managed_names: Every fixed name the configured rules can emit
        managed_rule_ids: Ids of the configured rules; entries they wrote
            are dropped even when their name was resolved from the cart

    Returns:
        The new ledger and the names that had to be de-duplicated
    """
    drop_names = set(managed_names)
    drop_names.update(entry.name for entry in fresh)
    drop_rules = set(managed_rule_ids)

    merged = FeeLedger(
        e for e in previous
        if e.name not in drop_names and not (e.rule_id and e.rule_id in drop_rules)
    ).with_entries(fresh)
    healed = tuple(merged.duplicate_names())
    if healed:
        logger.warning(f"Collapsed duplicate fee entries: {', '.join(healed)}")
        merged = merged.deduplicated()
    return merged, healed
