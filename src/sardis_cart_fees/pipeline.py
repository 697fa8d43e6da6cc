"""
Two-phase fee pipeline.

Phase 1 evaluates every discount rule against the cart alone. Phase 2
evaluates every surcharge rule against the cart and the discount total of
phase 1, so a surcharge always sees the discounts of its own pass. The
result is committed with remove-then-add (see ``ledger.merge_pass``).

The pipeline is pure: it reads a cart snapshot and a ledger and returns a
new ledger. It never touches session state.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import FrozenSet, List, Optional, Sequence, Tuple

from sardis_cart_fees.discounts import DiscountRule
from sardis_cart_fees.exceptions import FeeRuleEvaluationError
from sardis_cart_fees.gate import compute_fingerprint
from sardis_cart_fees.ledger import FeeEntry, FeeLedger, merge_pass
from sardis_cart_fees.models import CartState, PassResult
from sardis_cart_fees.money import ZERO
from sardis_cart_fees.surcharges import PaymentMethodSurchargeRule

logger = logging.getLogger(__name__)

DISCOUNT_PHASE = "discount"
SURCHARGE_PHASE = "surcharge"


class FeePipeline:
    """Runs the discount phase, then the surcharge phase, then builds the commit."""

    def __init__(
        self,
        discount_rules: Sequence[DiscountRule],
        surcharge_rules: Sequence[PaymentMethodSurchargeRule] = (),
    ):
        self.discount_rules = list(discount_rules)
        self.surcharge_rules = list(surcharge_rules)

    def managed_names(self) -> FrozenSet[str]:
        names = set()
        for rule in self.discount_rules:
            names |= rule.managed_names()
        for rule in self.surcharge_rules:
            names |= rule.managed_names()
        return frozenset(names)

    def managed_rule_ids(self) -> FrozenSet[str]:
        return frozenset(
            [r.rule_id for r in self.discount_rules]
            + [r.rule_id for r in self.surcharge_rules]
        )

    def discount_phase(self, cart: CartState) -> List[FeeEntry]:
        entries = []
        for rule in self.discount_rules:
            try:
                entry = rule.evaluate(cart)
            except Exception as e:
                raise FeeRuleEvaluationError(rule.rule_id, DISCOUNT_PHASE, str(e)) from e
            if entry is not None:
                entries.append(entry)
        return entries

    def surcharge_phase(
        self,
        cart: CartState,
        discount_total: Decimal,
    ) -> Tuple[List[FeeEntry], Optional[Decimal]]:
        entries = []
        base: Optional[Decimal] = None
        for rule in self.surcharge_rules:
            try:
                if not rule.applies_to(cart):
                    continue
                base = rule.base(cart, discount_total)
                entries.append(rule.entry_for_base(base, cart.currency))
            except Exception as e:
                raise FeeRuleEvaluationError(rule.rule_id, SURCHARGE_PHASE, str(e)) from e
        return entries, base

    def surcharge_required(self, cart: CartState) -> bool:
        return any(rule.applies_to(cart) for rule in self.surcharge_rules)

    def missing_surcharge(self, cart: CartState, ledger: FeeLedger) -> bool:
        """True when an applicable surcharge rule has no entry in the ledger."""
        return any(
            rule.applies_to(cart) and rule.label not in ledger
            for rule in self.surcharge_rules
        )

    def run(self, cart: CartState, previous_ledger: FeeLedger) -> PassResult:
        """
        Compute a full pass.

        Raises:
            FeeRuleEvaluationError: If any rule raised; nothing is returned
                and the previous ledger is left as it was
        """
        discounts = self.discount_phase(cart)
        discount_total = ZERO - sum((e.amount for e in discounts), ZERO)

        surcharges, surcharge_base = self.surcharge_phase(cart, discount_total)

        ledger, healed = merge_pass(
            previous_ledger,
            discounts + surcharges,
            self.managed_names(),
            self.managed_rule_ids(),
        )
        logger.debug(
            f"Pass computed: discounts={discount_total} "
            f"surcharge_base={surcharge_base} entries={len(ledger)}"
        )
        return PassResult(
            ledger=ledger,
            discount_total=discount_total,
            surcharge_base=surcharge_base,
            fingerprint=compute_fingerprint(cart, discounts),
            healed_names=healed,
        )

    def preview(self, cart: CartState) -> PassResult:
        """What a pass would produce for this cart on an empty ledger."""
        return self.run(cart, FeeLedger())
