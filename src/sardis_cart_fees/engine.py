"""
Cart fee engine.

Entry point for every trigger that may change a cart's fees: quantity
changes, coupon application, payment-method switches and admin
recalculation all call ``FeeEngine.recalculate``.

Each call runs under the session's lock:

    gate -> (if stale) pipeline -> commit ledger, baseline, signal

There is no await between reading the session state and committing it,
so overlapping triggers on one session serialize and the last completed
pass wins. Events are published after the lock is released.

Usage:
    engine = FeeEngine.from_settings()
    ctx = SessionContext(session_id="sess_123")

    outcome = await engine.recalculate(ctx, cart)
    if engine.needs_refresh(ctx, last_seen_version):
        render(engine.summary(ctx))
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from sardis_cart_fees.config import CartFeeSettings, load_settings
from sardis_cart_fees.discounts import (
    DiscountRule,
    PerItemQuantityStrategy,
    build_discount_rules,
)
from sardis_cart_fees.events import FeeEvent, FeeEventBackend, FeeEventType
from sardis_cart_fees.exceptions import FeeRuleEvaluationError
from sardis_cart_fees.gate import RecalculationGate
from sardis_cart_fees.ledger import FeeLedger
from sardis_cart_fees.logging import get_logger
from sardis_cart_fees.models import (
    Baseline,
    CartState,
    FeeSummary,
    PassResult,
    PassStatus,
    RecalculationOutcome,
    SessionContext,
    ThresholdMessage,
)
from sardis_cart_fees.pipeline import FeePipeline
from sardis_cart_fees.surcharges import PaymentMethodSurchargeRule

logger = get_logger(__name__)

DEFAULT_TRIGGER = "cart_updated"


class FeeEngine:
    """
    Keeps a session's fee ledger consistent with its cart.

    The engine holds rules and collaborators only; all per-session state
    lives in the ``SessionContext`` the caller passes in.
    """

    def __init__(
        self,
        discount_rules: Sequence[DiscountRule],
        surcharge_rules: Sequence[PaymentMethodSurchargeRule] = (),
        event_backend: Optional[FeeEventBackend] = None,
        currency: str = "USD",
    ):
        self.pipeline = FeePipeline(discount_rules, surcharge_rules)
        self.gate = RecalculationGate(self.pipeline)
        self.event_backend = event_backend
        self.currency = currency

    @classmethod
    def from_settings(
        cls,
        settings: Optional[CartFeeSettings] = None,
        event_backend: Optional[FeeEventBackend] = None,
    ) -> "FeeEngine":
        """Build the configured rule set."""
        settings = settings or load_settings()
        surcharge_rules: List[PaymentMethodSurchargeRule] = []
        if settings.surcharge_enabled:
            surcharge_rules.append(PaymentMethodSurchargeRule.from_settings(settings))
        return cls(
            discount_rules=build_discount_rules(settings),
            surcharge_rules=surcharge_rules,
            event_backend=event_backend,
            currency=settings.currency,
        )

    async def recalculate(
        self,
        ctx: SessionContext,
        cart: CartState,
        force: bool = False,
        trigger: str = DEFAULT_TRIGGER,
    ) -> RecalculationOutcome:
        """
        Bring the session's ledger up to date with the cart.

        Never raises for a failing rule: the previous ledger, fingerprint
        and signal are kept, the next trigger is forced to retry, and the
        outcome carries the error.
        """
        if cart.is_empty:
            if len(ctx.ledger) or ctx.baseline != Baseline():
                return await self.clear(ctx, reason=f"cart emptied ({trigger})")
            return RecalculationOutcome(
                status=PassStatus.SKIPPED,
                reason="cart is empty",
                ledger=ctx.ledger,
                signal=ctx.signal,
            )

        events: List[FeeEvent] = []
        async with ctx.lock:
            with logger.context(
                operation="recalculate",
                session_id=ctx.session_id,
                customer_id=cart.customer_id,
                trigger=trigger,
            ):
                outcome = self._recalculate_locked(ctx, cart, force, events)

        await self._publish_all(events)
        return outcome

    def _recalculate_locked(
        self,
        ctx: SessionContext,
        cart: CartState,
        force: bool,
        events: List[FeeEvent],
    ) -> RecalculationOutcome:
        if force and not ctx.baseline.force:
            ctx.baseline = Baseline(fingerprint=ctx.baseline.fingerprint, force=True)

        decision = self.gate.should_recompute(cart, ctx)
        if not decision.recompute:
            logger.debug(f"Skipping pass: {decision.reason.value}")
            events.append(self._event(FeeEventType.PASS_SKIPPED, ctx, decision.reason.value))
            return RecalculationOutcome(
                status=PassStatus.SKIPPED,
                reason=decision.reason.value,
                ledger=ctx.ledger,
                signal=ctx.signal,
            )

        try:
            result = self.pipeline.run(cart, ctx.ledger)
        except FeeRuleEvaluationError as e:
            ctx.baseline = Baseline(fingerprint=ctx.baseline.fingerprint, force=True)
            logger.exception(
                f"Fee pass failed, keeping previous ledger: {e.message}",
                rule_id=e.rule_id,
                phase=e.phase,
            )
            events.append(
                self._event(
                    FeeEventType.PASS_FAILED, ctx, decision.reason.value, error=e.to_dict()
                )
            )
            return RecalculationOutcome(
                status=PassStatus.FAILED,
                reason=decision.reason.value,
                ledger=ctx.ledger,
                signal=ctx.signal,
                error=e,
            )

        self._commit(ctx, result)
        logger.info(
            f"Fee pass committed ({decision.reason.value})",
            ledger_version=ctx.signal.ledger_version,
            discount_total=str(result.discount_total),
            surcharge_total=str(result.ledger.surcharge_total),
        )
        if result.healed_names:
            logger.warning(
                "Ledger held duplicate fee names",
                names=list(result.healed_names),
            )
            events.append(
                self._event(
                    FeeEventType.LEDGER_SELF_HEALED,
                    ctx,
                    "duplicate fee names collapsed",
                    names=list(result.healed_names),
                )
            )
        events.append(
            self._event(
                FeeEventType.PASS_COMPLETED,
                ctx,
                decision.reason.value,
                discount_total=str(result.discount_total),
                surcharge_total=str(result.ledger.surcharge_total),
            )
        )
        return RecalculationOutcome(
            status=PassStatus.COMPLETED,
            reason=decision.reason.value,
            ledger=ctx.ledger,
            signal=ctx.signal,
            surcharge_base=result.surcharge_base,
        )

    def _commit(self, ctx: SessionContext, result: PassResult) -> None:
        ctx.ledger = result.ledger
        ctx.baseline = Baseline(fingerprint=result.fingerprint, force=False)
        ctx.signal = ctx.signal.next()

    def request_recalculation(self, ctx: SessionContext) -> None:
        """Force the next trigger to run a full pass (admin recalculation)."""
        ctx.baseline = Baseline(fingerprint=ctx.baseline.fingerprint, force=True)
        logger.info("Recalculation requested", session_id=ctx.session_id)

    async def clear(self, ctx: SessionContext, reason: str = "cleared") -> RecalculationOutcome:
        """Drop every fee and the baseline, e.g. when the cart empties."""
        async with ctx.lock:
            ctx.ledger = FeeLedger()
            ctx.baseline = Baseline()
            ctx.signal = ctx.signal.next()
            event = self._event(FeeEventType.LEDGER_CLEARED, ctx, reason)
            outcome = RecalculationOutcome(
                status=PassStatus.CLEARED,
                reason=reason,
                ledger=ctx.ledger,
                signal=ctx.signal,
            )
        logger.info(f"Fee ledger cleared: {reason}", session_id=ctx.session_id)
        await self._publish_all([event])
        return outcome

    def needs_refresh(self, ctx: SessionContext, last_seen_version: Optional[int]) -> bool:
        """Whether a view rendered at ``last_seen_version`` is out of date."""
        if last_seen_version is None:
            return True
        return ctx.signal.ledger_version != last_seen_version

    def summary(self, ctx: SessionContext) -> FeeSummary:
        """Ledger totals for display; exact sums plus rounded ``display_*`` values."""
        ledger = ctx.ledger
        return FeeSummary(
            discount_total=ledger.discount_total,
            surcharge_total=ledger.surcharge_total,
            net_adjustment=ledger.net_adjustment,
            rows=tuple(ledger.as_rows(self.currency)),
            signal=ctx.signal,
            currency=self.currency,
        )

    def preview(self, cart: CartState) -> PassResult:
        """The ledger a pass would produce for this cart; commits nothing.

        Raises:
            FeeRuleEvaluationError: If a rule fails
        """
        return self.pipeline.preview(cart)

    def preview_thresholds(
        self,
        product_id: str,
        quantity: int,
        roles: Sequence[str] = (),
    ) -> Optional[ThresholdMessage]:
        """What a quantity of a product would qualify for before it is added."""
        for rule in self.pipeline.discount_rules:
            strategy = rule.strategy
            if (
                isinstance(strategy, PerItemQuantityStrategy)
                and strategy.product_id == str(product_id)
            ):
                return strategy.threshold_message(quantity, roles)
        return None

    def _event(
        self,
        event_type: FeeEventType,
        ctx: SessionContext,
        reason: str,
        **details,
    ) -> FeeEvent:
        return FeeEvent(
            event_type=event_type,
            session_id=ctx.session_id,
            ledger_version=ctx.signal.ledger_version,
            reason=reason,
            details=details,
        )

    async def _publish_all(self, events: List[FeeEvent]) -> None:
        if self.event_backend is None:
            return
        for event in events:
            await self.event_backend.publish(event)
