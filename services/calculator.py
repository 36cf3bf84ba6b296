"""
Commission Calculator - turns an order into a commission amount.

Pure computation: callers load the agent's rate, tier, volume tiers, team
boost and bonus tables and pass them in.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from ..exceptions import AgentNotEligible, ValidationError
from ..values import AgentStatus, AgentTier, CommissionRate, money, to_decimal

ZERO = Decimal('0.00')


@dataclass
class OrderContext:
    """Order data supplied by the order service when an order completes."""

    order_id: str
    agent_id: int
    order_total: Decimal
    order_subtotal: Optional[Decimal] = None
    shipping_cost: Decimal = ZERO
    discount_amount: Decimal = ZERO
    product_ids: Sequence[str] = ()
    category_ids: Sequence[str] = ()

    @property
    def commission_base(self) -> Decimal:
        """Subtotal the commission is earned on; shipping and discounts excluded."""
        if self.order_subtotal is not None:
            base = to_decimal(self.order_subtotal)
        else:
            base = (
                to_decimal(self.order_total)
                - to_decimal(self.shipping_cost)
                - to_decimal(self.discount_amount)
            )
        if base < 0:
            raise ValidationError(f"Order subtotal cannot be negative, got {base}")
        return money(base)


@dataclass(frozen=True)
class TierRate:
    """Volume tier; ``max_amount`` None means no upper limit."""

    min_amount: Decimal
    max_amount: Optional[Decimal]
    rate: Decimal

    def contains(self, amount) -> bool:
        amount = to_decimal(amount)
        if amount < to_decimal(self.min_amount):
            return False
        return self.max_amount is None or amount < to_decimal(self.max_amount)

    def as_dict(self):
        return {
            'min_amount': str(self.min_amount),
            'max_amount': None if self.max_amount is None else str(self.max_amount),
            'rate': str(self.rate),
        }


@dataclass(frozen=True)
class BonusRate:
    """Active per-product or per-category bonus, in percentage points."""

    item_id: str
    item_name: str
    rate: Decimal


@dataclass(frozen=True)
class BreakdownItem:
    item_type: str  # base, product or category
    item_id: str
    item_name: str
    amount: Decimal
    rate: Decimal

    def as_dict(self):
        return {
            'item_type': self.item_type,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'amount': str(self.amount),
            'rate': str(self.rate),
        }


@dataclass
class CommissionCalculationResult:
    order_id: str
    agent_id: int
    rate: CommissionRate
    amount: Decimal
    based_on_amount: Decimal
    tier_applied: Optional[TierRate] = None
    breakdown: List[BreakdownItem] = field(default_factory=list)

    def breakdown_json(self):
        return [item.as_dict() for item in self.breakdown]

    def tier_json(self):
        return self.tier_applied.as_dict() if self.tier_applied else None


class CommissionCalculator:
    """Computes commission for one order."""

    @staticmethod
    def find_tier(tiers: Iterable[TierRate], amount) -> Optional[TierRate]:
        """First tier, by ascending ``min_amount``, whose [min, max) range holds ``amount``."""
        for tier in sorted(tiers, key=lambda t: to_decimal(t.min_amount)):
            if tier.contains(amount):
                return tier
        return None

    @staticmethod
    def validate_tiers(tiers: Iterable[TierRate]) -> List[TierRate]:
        """Return the tiers sorted, raising ValidationError on bad or overlapping ranges."""
        ordered = sorted(tiers, key=lambda t: to_decimal(t.min_amount))
        previous = None
        for tier in ordered:
            CommissionRate(tier.rate)
            if to_decimal(tier.min_amount) < 0:
                raise ValidationError("Tier minimum cannot be negative")
            if tier.max_amount is not None and to_decimal(tier.max_amount) <= to_decimal(tier.min_amount):
                raise ValidationError(
                    f"Tier maximum {tier.max_amount} must be above its minimum {tier.min_amount}"
                )
            if previous is not None and (
                previous.max_amount is None
                or to_decimal(previous.max_amount) > to_decimal(tier.min_amount)
            ):
                raise ValidationError(
                    f"Volume tiers overlap at {tier.min_amount}"
                )
            previous = tier
        return ordered

    @staticmethod
    def _bonus_lines(item_type, item_ids, rates, base) -> List[BreakdownItem]:
        by_id = {str(rate.item_id): rate for rate in rates}
        lines = []
        seen = set()
        for item_id in item_ids:
            item_id = str(item_id)
            if item_id in seen or item_id not in by_id:
                continue
            seen.add(item_id)
            bonus = by_id[item_id]
            lines.append(BreakdownItem(
                item_type=item_type,
                item_id=item_id,
                item_name=bonus.item_name,
                amount=CommissionRate(bonus.rate).calculate(base),
                rate=to_decimal(bonus.rate),
            ))
        return lines

    def calculate(
        self,
        order: OrderContext,
        agent_status=AgentStatus.ACTIVE,
        base_rate=None,
        tier=AgentTier.BRONZE,
        volume_tiers: Iterable[TierRate] = (),
        product_rates: Iterable[BonusRate] = (),
        category_rates: Iterable[BonusRate] = (),
        team_boost=None,
    ) -> CommissionCalculationResult:
        """
        Calculate the commission for an order.

        The rate is the matching volume tier's rate (or the base rate) plus the
        team boost plus the agent tier bonus, capped at 100. Product and
        category bonuses are added on top, each as ``base x bonus / 100``.

        Raises:
            AgentNotEligible: the agent is not active.
        """
        status = AgentStatus.parse(agent_status)
        if not status.can_earn_commission:
            raise AgentNotEligible(f"Agent {order.agent_id} is {status.value} and cannot earn commission")

        base = order.commission_base
        if base_rate is None:
            base_rate = CommissionRate.default()
        elif not isinstance(base_rate, CommissionRate):
            base_rate = CommissionRate(base_rate)

        tier_applied = self.find_tier(volume_tiers, base)
        rate = CommissionRate(tier_applied.rate) if tier_applied else base_rate
        if team_boost is not None:
            rate = rate.add(CommissionRate(team_boost))
        rate = rate.add_percentage(AgentTier.parse(tier).bonus_percentage)

        base_amount = rate.calculate(base)
        breakdown = [BreakdownItem('base', '', 'Base commission', base_amount, rate.value)]
        breakdown += self._bonus_lines('product', order.product_ids, product_rates, base)
        breakdown += self._bonus_lines('category', order.category_ids, category_rates, base)

        return CommissionCalculationResult(
            order_id=str(order.order_id),
            agent_id=order.agent_id,
            rate=rate,
            amount=money(sum((item.amount for item in breakdown), ZERO)),
            based_on_amount=base,
            tier_applied=tier_applied,
            breakdown=breakdown,
        )
