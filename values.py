"""Value objects and status enums for the agent commissions module."""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.db import models
from django.utils.translation import gettext_lazy as _

from .exceptions import InvalidPeriod, InvalidRange, ValidationError

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

PERIOD_RE = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])$')


def to_decimal(value) -> Decimal:
    """Convert ints, floats and strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Not a number: {value!r}") from None


def money(value) -> Decimal:
    """Round an amount to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_period(period: str):
    """Parse a YYYY-MM payout period into (year, month)."""
    match = PERIOD_RE.match(period or '')
    if not match:
        raise InvalidPeriod(f"Period must be formatted YYYY-MM, got {period!r}")
    return int(match.group(1)), int(match.group(2))


# =============================================================================
# Commission rate
# =============================================================================

@dataclass(frozen=True, order=True)
class CommissionRate:
    """A commission percentage in [0, 100]."""

    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value)
        if value < 0 or value > HUNDRED:
            raise InvalidRange(f"Commission rate must be between 0 and 100, got {value}")
        object.__setattr__(self, 'value', value)

    def __str__(self):
        return f"{self.value:.2f}%"

    @classmethod
    def default(cls) -> 'CommissionRate':
        from .conf import get_setting
        return cls(get_setting('default_commission_rate'))

    @property
    def fraction(self) -> Decimal:
        return self.value / HUNDRED

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    def calculate(self, amount) -> Decimal:
        """Commission earned on ``amount`` at this rate, rounded to cents."""
        return money(to_decimal(amount) * self.value / HUNDRED)

    def add(self, other: 'CommissionRate') -> 'CommissionRate':
        """Add another rate, capped at 100."""
        return CommissionRate(min(self.value + other.value, HUNDRED))

    def add_percentage(self, bonus) -> 'CommissionRate':
        """Add a fractional bonus (0.02 == 2 points), capped at 100."""
        return CommissionRate(min(self.value + to_decimal(bonus) * HUNDRED, HUNDRED))


# =============================================================================
# Agent tier & status
# =============================================================================

class AgentTier(models.TextChoices):
    BRONZE = 'bronze', _("Bronze")
    SILVER = 'silver', _("Silver")
    GOLD = 'gold', _("Gold")
    PLATINUM = 'platinum', _("Platinum")

    @classmethod
    def parse(cls, value) -> 'AgentTier':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid agent tier: {value!r}") from None

    @property
    def bonus_percentage(self) -> Decimal:
        """Fractional bonus added to the agent's rate (0.02 == 2 points)."""
        return TIER_BONUS[self]

    @property
    def level(self) -> int:
        return TIER_ORDER.index(self) + 1

    @property
    def is_premium(self) -> bool:
        return self in (AgentTier.GOLD, AgentTier.PLATINUM)

    def is_higher_than(self, other) -> bool:
        return self.level > AgentTier.parse(other).level

    def next_tier(self) -> 'AgentTier':
        if self.level == len(TIER_ORDER):
            return self
        return TIER_ORDER[self.level]


TIER_ORDER = [AgentTier.BRONZE, AgentTier.SILVER, AgentTier.GOLD, AgentTier.PLATINUM]

TIER_BONUS = {
    AgentTier.BRONZE: Decimal('0.00'),
    AgentTier.SILVER: Decimal('0.01'),
    AgentTier.GOLD: Decimal('0.02'),
    AgentTier.PLATINUM: Decimal('0.03'),
}


class AgentStatus(models.TextChoices):
    ACTIVE = 'active', _("Active")
    INACTIVE = 'inactive', _("Inactive")
    SUSPENDED = 'suspended', _("Suspended")
    PENDING = 'pending', _("Pending")

    @classmethod
    def parse(cls, value) -> 'AgentStatus':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid agent status: {value!r}") from None

    @property
    def can_earn_commission(self) -> bool:
        return self == AgentStatus.ACTIVE

    @property
    def can_receive_payout(self) -> bool:
        return self == AgentStatus.ACTIVE

    @property
    def can_be_activated(self) -> bool:
        return self in (AgentStatus.INACTIVE, AgentStatus.PENDING)


# =============================================================================
# Commission & payout status machines
# =============================================================================

class CommissionStatus(models.TextChoices):
    PENDING = 'pending', _("Pending")
    APPROVED = 'approved', _("Approved")
    PAID = 'paid', _("Paid")
    CANCELLED = 'cancelled', _("Cancelled")

    @classmethod
    def parse(cls, value) -> 'CommissionStatus':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid commission status: {value!r}") from None

    def can_transition_to(self, target) -> bool:
        return target in COMMISSION_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not COMMISSION_TRANSITIONS[self]

    @property
    def is_payable(self) -> bool:
        return self == CommissionStatus.APPROVED


COMMISSION_TRANSITIONS = {
    CommissionStatus.PENDING: (CommissionStatus.APPROVED, CommissionStatus.CANCELLED),
    CommissionStatus.APPROVED: (CommissionStatus.PAID, CommissionStatus.CANCELLED),
    CommissionStatus.PAID: (),
    CommissionStatus.CANCELLED: (),
}


class PayoutStatus(models.TextChoices):
    PENDING = 'pending', _("Pending")
    PROCESSING = 'processing', _("Processing")
    COMPLETED = 'completed', _("Completed")
    FAILED = 'failed', _("Failed")
    CANCELLED = 'cancelled', _("Cancelled")

    @classmethod
    def parse(cls, value) -> 'PayoutStatus':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid payout status: {value!r}") from None

    def can_transition_to(self, target) -> bool:
        return target in PAYOUT_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not PAYOUT_TRANSITIONS[self]

    @property
    def can_retry(self) -> bool:
        return self == PayoutStatus.FAILED


PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: (PayoutStatus.PROCESSING, PayoutStatus.CANCELLED),
    PayoutStatus.PROCESSING: (PayoutStatus.COMPLETED, PayoutStatus.FAILED),
    PayoutStatus.COMPLETED: (),
    PayoutStatus.FAILED: (PayoutStatus.PENDING,),
    PayoutStatus.CANCELLED: (),
}

# Payouts in these states still hold their commissions.
OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.FAILED)


# =============================================================================
# Payout line
# =============================================================================

@dataclass(frozen=True)
class PayoutLine:
    """A commission included in a payout. Equal when the commission is."""

    commission_id: int
    order_id: str = field(compare=False)
    amount: Decimal = field(compare=False)
