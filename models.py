"""Agent commissions models."""

import re
from datetime import date
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .conf import get_setting
from .events import (
    AgentCreated,
    AgentPromoted,
    AgentStatusChanged,
    CommissionApproved,
    CommissionCancelled,
    CommissionCreated,
    CommissionPaid,
    PayoutCompleted,
    PayoutFailed,
)
from .exceptions import (
    AlreadyTerminal,
    InvalidTransition,
    NoCommissions,
    NotApproved,
    ValidationError,
)
from .values import (
    AgentStatus,
    AgentTier,
    CommissionRate,
    CommissionStatus,
    PayoutLine,
    PayoutStatus,
    money,
    parse_period,
    to_decimal,
)

PERCENT_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]


def default_commission_rate():
    return Decimal(str(get_setting('default_commission_rate')))


def default_minimum_payout():
    return Decimal(str(get_setting('minimum_payout_amount')))


class BaseModel(models.Model):
    created_at = models.DateTimeField(_("Created At"), auto_now_add=True)
    updated_at = models.DateTimeField(_("Updated At"), auto_now=True)

    class Meta:
        abstract = True


# =============================================================================
# Config
# =============================================================================

class CommissionsConfig(BaseModel):
    """Operator-editable commissions configuration (singleton, pk=1)."""

    default_commission_rate = models.DecimalField(
        _("Default Commission Rate (%)"), max_digits=5, decimal_places=2,
        default=default_commission_rate, validators=PERCENT_VALIDATORS,
        help_text=_("Rate given to newly registered agents")
    )
    minimum_payout_amount = models.DecimalField(
        _("Minimum Payout Amount"), max_digits=12, decimal_places=2,
        default=default_minimum_payout,
        help_text=_("Minimum amount required for payout")
    )

    class Meta:
        db_table = 'agent_commissions_config'
        verbose_name = _("Commissions Config")
        verbose_name_plural = _("Commissions Config")

    def __str__(self):
        return "Agent Commissions Config"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def get_config(cls, using=None):
        config, _ = cls.objects.db_manager(using).get_or_create(pk=1)
        return config


# =============================================================================
# Teams & agents
# =============================================================================

class Team(BaseModel):
    """A sales team. Members reference the team; the team owns none of them."""

    code = models.CharField(_("Code"), max_length=50, unique=True)
    name = models.CharField(_("Name"), max_length=255)
    description = models.TextField(_("Description"), blank=True)
    leader = models.ForeignKey(
        'Agent', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='led_teams',
        verbose_name=_("Leader")
    )
    target_monthly = models.DecimalField(
        _("Monthly Sales Target"), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    commission_boost = models.DecimalField(
        _("Commission Boost (%)"), max_digits=5, decimal_places=2,
        default=Decimal('0.00'), validators=PERCENT_VALIDATORS,
        help_text=_("Percentage points added to every member's rate")
    )
    is_active = models.BooleanField(_("Active"), default=True)

    class Meta:
        db_table = 'agent_commissions_team'
        verbose_name = _("Team")
        verbose_name_plural = _("Teams")
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def boost_rate(self) -> CommissionRate:
        """Boost granted to members; inactive teams grant none."""
        if not self.is_active:
            return CommissionRate(0)
        return CommissionRate(self.commission_boost)

    @property
    def has_leader(self):
        return self.leader_id is not None

    def set_commission_boost(self, rate):
        self.commission_boost = CommissionRate(rate).value
        self.updated_at = timezone.now()

    def set_target(self, target):
        target = to_decimal(target)
        if target < 0:
            raise ValidationError("Monthly target cannot be negative")
        self.target_monthly = target
        self.updated_at = timezone.now()

    def set_leader(self, agent):
        self.leader = agent
        self.updated_at = timezone.now()

    def remove_leader(self):
        self.leader = None
        self.updated_at = timezone.now()

    def activate(self):
        self.is_active = True
        self.updated_at = timezone.now()

    def deactivate(self):
        self.is_active = False
        self.updated_at = timezone.now()


class Agent(BaseModel):
    """A sales reseller earning commission on attributed orders."""

    code = models.CharField(_("Code"), max_length=50, unique=True, blank=True)
    name = models.CharField(_("Name"), max_length=255)
    email = models.EmailField(_("Email"), unique=True)
    phone = models.CharField(_("Phone"), max_length=50, blank=True)

    commission_rate = models.DecimalField(
        _("Commission Rate (%)"), max_digits=5, decimal_places=2,
        default=default_commission_rate, validators=PERCENT_VALIDATORS
    )
    tier = models.CharField(
        _("Tier"), max_length=20, choices=AgentTier.choices, default=AgentTier.BRONZE
    )
    status = models.CharField(
        _("Status"), max_length=20, choices=AgentStatus.choices, default=AgentStatus.ACTIVE
    )
    total_earned = models.DecimalField(
        _("Total Earned"), max_digits=12, decimal_places=2, default=Decimal('0.00'),
        help_text=_("Credited when commissions are approved")
    )
    team = models.ForeignKey(
        Team, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='members',
        verbose_name=_("Team")
    )

    class Meta:
        db_table = 'agent_commissions_agent'
        verbose_name = _("Agent")
        verbose_name_plural = _("Agents")
        ordering = ['code']
        indexes = [
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self._generate_code(kwargs.get('using'))
        super().save(*args, **kwargs)

    def _generate_code(self, using=None):
        prefix = get_setting('agent_code_prefix')
        codes = Agent.objects.db_manager(using).filter(
            code__regex=rf"^{re.escape(prefix)}[0-9]+$",
        ).values_list('code', flat=True)
        highest = max((int(code[len(prefix):]) for code in codes), default=0)
        return f"{prefix}{highest + 1:04d}"

    # --- Typed views of stored values ---

    @property
    def rate(self) -> CommissionRate:
        return CommissionRate(self.commission_rate)

    @property
    def tier_level(self) -> AgentTier:
        return AgentTier.parse(self.tier)

    @property
    def agent_status(self) -> AgentStatus:
        return AgentStatus.parse(self.status)

    @property
    def effective_commission_rate(self) -> CommissionRate:
        """Base rate plus the tier bonus."""
        return self.rate.add_percentage(self.tier_level.bonus_percentage)

    @property
    def can_earn_commission(self):
        return self.agent_status.can_earn_commission

    @property
    def can_receive_payout(self):
        return self.agent_status.can_receive_payout

    @property
    def is_active(self):
        return self.agent_status == AgentStatus.ACTIVE

    # --- Behaviour ---

    def registered_events(self):
        return [AgentCreated(self.pk, code=self.code, name=self.name)]

    def set_commission_rate(self, rate):
        self.commission_rate = CommissionRate(rate).value
        self.updated_at = timezone.now()
        return []

    def set_tier(self, tier):
        self.tier = AgentTier.parse(tier)
        self.updated_at = timezone.now()
        return []

    def promote_tier(self):
        current = self.tier_level
        next_tier = current.next_tier()
        if next_tier == current:
            raise InvalidTransition("Agent is already at the highest tier", current, next_tier)
        self.tier = next_tier
        self.updated_at = timezone.now()
        return [AgentPromoted(self.pk, new_tier=next_tier.value)]

    def _set_status(self, status, reason=''):
        self.status = status
        self.updated_at = timezone.now()
        return [AgentStatusChanged(self.pk, new_status=status.value, reason=reason)]

    def activate(self):
        current = self.agent_status
        if not current.can_be_activated:
            raise InvalidTransition(f"Agent is {current.value}, cannot activate", current, AgentStatus.ACTIVE)
        return self._set_status(AgentStatus.ACTIVE)

    def suspend(self, reason=''):
        if self.agent_status == AgentStatus.SUSPENDED:
            return []
        return self._set_status(AgentStatus.SUSPENDED, reason)

    def deactivate(self):
        """Soft delete: agents are never removed."""
        if self.agent_status == AgentStatus.INACTIVE:
            return []
        return self._set_status(AgentStatus.INACTIVE)

    def assign_to_team(self, team):
        self.team = team
        self.updated_at = timezone.now()

    def remove_from_team(self):
        self.team = None
        self.updated_at = timezone.now()

    def record_earnings(self, amount):
        amount = money(amount)
        if amount < 0:
            raise ValidationError("Earnings cannot be negative")
        self.total_earned = money(self.total_earned) + amount
        self.updated_at = timezone.now()

    def apply_events(self, events):
        """Credit approved commissions; other events do not touch earnings."""
        for event in events:
            if isinstance(event, CommissionApproved) and event.agent_id == self.pk:
                self.record_earnings(event.amount)


# =============================================================================
# Rate tables
# =============================================================================

class VolumeTier(BaseModel):
    """Volume tier: orders whose subtotal falls in [min, max) earn ``rate``."""

    agent = models.ForeignKey(
        Agent, on_delete=models.CASCADE, related_name='volume_tiers',
        verbose_name=_("Agent")
    )
    min_amount = models.DecimalField(_("Minimum Amount"), max_digits=12, decimal_places=2)
    max_amount = models.DecimalField(
        _("Maximum Amount"), max_digits=12, decimal_places=2, null=True, blank=True,
        help_text=_("Leave empty for no upper limit")
    )
    rate = models.DecimalField(
        _("Rate (%)"), max_digits=5, decimal_places=2, validators=PERCENT_VALIDATORS
    )

    class Meta:
        db_table = 'agent_commissions_volume_tier'
        verbose_name = _("Volume Tier")
        verbose_name_plural = _("Volume Tiers")
        ordering = ['agent_id', 'min_amount']

    def __str__(self):
        upper = self.max_amount if self.max_amount is not None else '∞'
        return f"{self.min_amount} - {upper}: {self.rate}%"

    def to_value(self):
        from .services.calculator import TierRate
        return TierRate(self.min_amount, self.max_amount, self.rate)


class BonusRate(BaseModel):
    bonus_rate = models.DecimalField(
        _("Bonus Rate (%)"), max_digits=5, decimal_places=2, validators=PERCENT_VALIDATORS
    )
    is_active = models.BooleanField(_("Active"), default=True)

    class Meta:
        abstract = True


class ProductCommissionRate(BonusRate):
    product_id = models.CharField(_("Product ID"), max_length=64, unique=True)
    product_name = models.CharField(_("Product Name"), max_length=255, blank=True)

    class Meta:
        db_table = 'agent_commissions_product_rate'
        verbose_name = _("Product Commission Rate")
        verbose_name_plural = _("Product Commission Rates")
        ordering = ['product_name']

    def __str__(self):
        return f"{self.product_name or self.product_id}: +{self.bonus_rate}%"


class CategoryCommissionRate(BonusRate):
    category_id = models.CharField(_("Category ID"), max_length=64, unique=True)
    category_name = models.CharField(_("Category Name"), max_length=255, blank=True)

    class Meta:
        db_table = 'agent_commissions_category_rate'
        verbose_name = _("Category Commission Rate")
        verbose_name_plural = _("Category Commission Rates")
        ordering = ['category_name']

    def __str__(self):
        return f"{self.category_name or self.category_id}: +{self.bonus_rate}%"


# =============================================================================
# Commissions
# =============================================================================

class Commission(BaseModel):
    """One agent's commission on one order."""

    agent = models.ForeignKey(
        Agent, on_delete=models.PROTECT, related_name='commissions',
        verbose_name=_("Agent")
    )
    order_id = models.CharField(_("Order ID"), max_length=100, db_index=True)
    order_total = models.DecimalField(_("Order Total"), max_digits=12, decimal_places=2)
    based_on_amount = models.DecimalField(
        _("Commission Base"), max_digits=12, decimal_places=2, default=Decimal('0.00'),
        help_text=_("Order subtotal the commission was computed on")
    )
    rate = models.DecimalField(
        _("Rate (%)"), max_digits=5, decimal_places=2, validators=PERCENT_VALIDATORS
    )
    amount = models.DecimalField(_("Amount"), max_digits=12, decimal_places=2)
    status = models.CharField(
        _("Status"), max_length=20, choices=CommissionStatus.choices, default=CommissionStatus.PENDING
    )
    tier_applied = models.JSONField(_("Tier Applied"), null=True, blank=True)
    breakdown = models.JSONField(_("Breakdown"), default=list, blank=True)

    payout = models.ForeignKey(
        'Payout', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='commissions',
        verbose_name=_("Payout")
    )

    approved_at = models.DateTimeField(_("Approved At"), null=True, blank=True)
    paid_at = models.DateTimeField(_("Paid At"), null=True, blank=True)
    cancelled_at = models.DateTimeField(_("Cancelled At"), null=True, blank=True)
    cancellation_reason = models.TextField(_("Cancellation Reason"), blank=True)
    notes = models.TextField(_("Notes"), blank=True)

    class Meta:
        db_table = 'agent_commissions_commission'
        verbose_name = _("Commission")
        verbose_name_plural = _("Commissions")
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['agent', 'status']),
            models.Index(fields=['agent', 'created_at']),
        ]

    def __str__(self):
        return f"{self.order_id}: {self.amount} ({self.status})"

    @classmethod
    def build(cls, agent_id, order_id, order_total, rate, amount=None, **extra):
        """
        Create an unsaved pending commission.

        The amount is ``rate`` x ``order_total`` unless supplied; either way it is
        fixed here and never recomputed.
        """
        if not agent_id:
            raise ValidationError("Agent ID is required")
        if not order_id:
            raise ValidationError("Order ID is required")
        order_total = to_decimal(order_total)
        if order_total <= 0:
            raise ValidationError("Order total must be positive")

        rate = CommissionRate(rate)
        if amount is None:
            amount = rate.calculate(order_total)
        elif to_decimal(amount) < 0:
            raise ValidationError("Commission amount cannot be negative")

        now = timezone.now()
        return cls(
            agent_id=agent_id,
            order_id=str(order_id),
            order_total=order_total,
            rate=rate.value,
            amount=money(amount),
            status=CommissionStatus.PENDING,
            created_at=now,
            updated_at=now,
            **extra,
        )

    @property
    def commission_status(self) -> CommissionStatus:
        return CommissionStatus.parse(self.status)

    @property
    def commission_rate(self) -> CommissionRate:
        return CommissionRate(self.rate)

    @property
    def is_payable(self):
        return self.commission_status.is_payable

    def created_events(self):
        return [CommissionCreated(
            self.pk, agent_id=self.agent_id, order_id=self.order_id, amount=self.amount,
        )]

    def approve(self):
        current = self.commission_status
        if not current.can_transition_to(CommissionStatus.APPROVED):
            raise InvalidTransition(
                f"Commission is {current.value}, cannot approve", current, CommissionStatus.APPROVED
            )
        now = timezone.now()
        self.status = CommissionStatus.APPROVED
        self.approved_at = now
        self.updated_at = now
        return [CommissionApproved(self.pk, agent_id=self.agent_id, amount=self.amount)]

    def mark_as_paid(self, paid_at=None):
        current = self.commission_status
        if not current.can_transition_to(CommissionStatus.PAID):
            raise NotApproved(
                f"Commission is {current.value}, must be approved before payment",
                current, CommissionStatus.PAID
            )
        now = timezone.now()
        self.status = CommissionStatus.PAID
        self.paid_at = paid_at or now
        self.updated_at = now
        return [CommissionPaid(self.pk, agent_id=self.agent_id, amount=self.amount)]

    def cancel(self, reason=''):
        current = self.commission_status
        if current.is_terminal:
            raise AlreadyTerminal(
                f"Commission is already {current.value}", current, CommissionStatus.CANCELLED
            )
        now = timezone.now()
        self.status = CommissionStatus.CANCELLED
        self.cancelled_at = now
        self.cancellation_reason = reason
        self.updated_at = now
        return [CommissionCancelled(self.pk, agent_id=self.agent_id, reason=reason)]


# =============================================================================
# Payouts
# =============================================================================

class Payout(BaseModel):
    """A batch of one agent's approved commissions for one period."""

    reference = models.CharField(_("Reference"), max_length=50, blank=True)
    agent = models.ForeignKey(
        Agent, on_delete=models.PROTECT, related_name='payouts',
        verbose_name=_("Agent")
    )
    period = models.CharField(_("Period"), max_length=7, help_text=_("YYYY-MM"))
    amount = models.DecimalField(
        _("Amount"), max_digits=12, decimal_places=2,
        help_text=_("Sum of the included commissions, fixed at creation")
    )
    commission_count = models.PositiveIntegerField(_("Commission Count"), default=0)
    status = models.CharField(
        _("Status"), max_length=20, choices=PayoutStatus.choices, default=PayoutStatus.PENDING
    )
    paid_at = models.DateTimeField(_("Paid At"), null=True, blank=True)
    failed_at = models.DateTimeField(_("Failed At"), null=True, blank=True)
    failure_reason = models.TextField(_("Failure Reason"), blank=True)
    notes = models.TextField(_("Notes"), blank=True)

    class Meta:
        db_table = 'agent_commissions_payout'
        verbose_name = _("Payout")
        verbose_name_plural = _("Payouts")
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['agent', 'status']),
            models.Index(fields=['agent', 'period']),
        ]

    def __str__(self):
        return f"{self.reference} - {self.period}"

    def save(self, *args, **kwargs):
        if not self.reference:
            self.reference = self._generate_reference(kwargs.get('using'))
        super().save(*args, **kwargs)

    def _generate_reference(self, using=None):
        prefix = f"{get_setting('payout_reference_prefix')}-{date.today().strftime('%Y%m')}-"
        existing = Payout.objects.db_manager(using).filter(reference__startswith=prefix).count()
        return f"{prefix}{existing + 1:04d}"

    @classmethod
    def build(cls, agent_id, period, lines):
        """
        Create an unsaved pending payout from commission lines.

        Raises NoCommissions when ``lines`` is empty.
        """
        if not agent_id:
            raise ValidationError("Agent ID is required")
        parse_period(period)
        lines = tuple(lines)
        if not lines:
            raise NoCommissions(f"No commissions to pay out for {period}")
        if len(set(lines)) != len(lines):
            raise ValidationError("A commission can appear only once in a payout")

        payout = cls(
            agent_id=agent_id,
            period=period,
            amount=sum((money(line.amount) for line in lines), Decimal('0.00')),
            commission_count=len(lines),
            status=PayoutStatus.PENDING,
        )
        payout._lines = lines
        return payout

    @property
    def payout_status(self) -> PayoutStatus:
        return PayoutStatus.parse(self.status)

    @property
    def lines(self):
        cached = self.__dict__.get('_lines')
        if cached is None:
            cached = tuple(item.to_line() for item in self.items.order_by('id'))
            self._lines = cached
        return cached

    @property
    def commission_ids(self):
        return [line.commission_id for line in self.lines]

    @property
    def item_count(self):
        return self.commission_count

    def _transition(self, target):
        current = self.payout_status
        if not current.can_transition_to(target):
            error = AlreadyTerminal if current.is_terminal else InvalidTransition
            raise error(f"Payout is {current.value}, cannot move to {target.value}", current, target)
        self.status = target
        self.updated_at = timezone.now()

    def process(self):
        self._transition(PayoutStatus.PROCESSING)
        return []

    def complete(self, paid_at=None):
        self._transition(PayoutStatus.COMPLETED)
        self.paid_at = paid_at or self.updated_at
        return [PayoutCompleted(
            self.pk, agent_id=self.agent_id, amount=self.amount,
            commission_ids=tuple(self.commission_ids),
        )]

    def fail(self, reason=''):
        self._transition(PayoutStatus.FAILED)
        self.failed_at = self.updated_at
        self.failure_reason = reason
        return [PayoutFailed(self.pk, agent_id=self.agent_id, reason=reason)]

    def retry(self):
        self._transition(PayoutStatus.PENDING)
        return []

    def cancel(self, reason=''):
        self._transition(PayoutStatus.CANCELLED)
        if reason:
            self.notes = f"{self.notes}\nCancellation reason: {reason}".strip()
        return []


class PayoutItem(models.Model):
    """A commission included in a payout, written once at payout creation."""

    payout = models.ForeignKey(
        Payout, on_delete=models.CASCADE, related_name='items',
        verbose_name=_("Payout")
    )
    commission = models.ForeignKey(
        Commission, on_delete=models.PROTECT, related_name='payout_items',
        verbose_name=_("Commission")
    )
    order_id = models.CharField(_("Order ID"), max_length=100)
    amount = models.DecimalField(_("Amount"), max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'agent_commissions_payout_item'
        verbose_name = _("Payout Item")
        verbose_name_plural = _("Payout Items")
        ordering = ['id']

    def __str__(self):
        return f"{self.order_id}: {self.amount}"

    def to_line(self) -> PayoutLine:
        return PayoutLine(self.commission_id, self.order_id, self.amount)
