"""
Commission Service - Business logic for commission calculation and lifecycle.
"""
import logging
from datetime import date
from typing import List, Optional

from django.db import transaction

from ..exceptions import (
    AgentNotFound,
    CommissionNotFound,
    DuplicateCommission,
    InvalidTransition,
    ValidationError,
)
from ..models import (
    Agent,
    CategoryCommissionRate,
    Commission,
    CommissionsConfig,
    Payout,
    ProductCommissionRate,
    VolumeTier,
)
from ..signals import publish
from ..values import CommissionStatus, OPEN_PAYOUT_STATUSES
from .calculator import BonusRate, CommissionCalculationResult, CommissionCalculator, OrderContext

logger = logging.getLogger(__name__)


class CommissionService:
    """Service class for commission operations."""

    def __init__(self, using: str = 'default', calculator: Optional[CommissionCalculator] = None):
        self.using = using
        self.calculator = calculator or CommissionCalculator()

    # ==================== Config ====================

    def get_config(self) -> CommissionsConfig:
        """Get or create the singleton config."""
        return CommissionsConfig.get_config(using=self.using)

    # ==================== Lookups ====================

    def get_commission(self, commission_id: int) -> Commission:
        try:
            return Commission.objects.using(self.using).select_related('agent').get(pk=commission_id)
        except Commission.DoesNotExist:
            raise CommissionNotFound(f"Commission {commission_id} not found") from None

    def get_commissions(
        self,
        agent_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Commission]:
        """Get commissions with filters."""
        qs = Commission.objects.using(self.using).select_related('agent')

        if agent_id:
            qs = qs.filter(agent_id=agent_id)
        if status:
            qs = qs.filter(status=CommissionStatus.parse(status))
        if start_date:
            qs = qs.filter(created_at__date__gte=start_date)
        if end_date:
            qs = qs.filter(created_at__date__lte=end_date)

        return list(qs.order_by('-created_at', '-id'))

    def _get_agent(self, agent_id, lock=False) -> Agent:
        qs = Agent.objects.using(self.using).select_related('team')
        if lock:
            qs = qs.select_for_update(of=('self',))
        try:
            return qs.get(pk=agent_id)
        except Agent.DoesNotExist:
            raise AgentNotFound(f"Agent {agent_id} not found") from None

    def _lock_commission(self, commission_id) -> Commission:
        try:
            return Commission.objects.using(self.using).select_for_update().get(pk=commission_id)
        except Commission.DoesNotExist:
            raise CommissionNotFound(f"Commission {commission_id} not found") from None

    def _ensure_not_in_open_payout(self, commission: Commission, action: str):
        if commission.payout_id is None:
            return
        in_open_payout = Payout.objects.using(self.using).filter(
            pk=commission.payout_id, status__in=OPEN_PAYOUT_STATUSES,
        ).exists()
        if in_open_payout:
            logger.warning(
                f"Refused to {action} commission {commission.pk}: assigned to payout {commission.payout_id}"
            )
            raise InvalidTransition(
                f"Commission {commission.pk} belongs to payout {commission.payout_id}, cannot {action}",
                commission.commission_status,
            )

    # ==================== Calculation ====================

    def _calculate(self, agent: Agent, order: OrderContext) -> CommissionCalculationResult:
        tiers = [
            tier.to_value()
            for tier in VolumeTier.objects.using(self.using).filter(agent_id=agent.pk)
        ]
        product_rates = [
            BonusRate(rate.product_id, rate.product_name, rate.bonus_rate)
            for rate in ProductCommissionRate.objects.using(self.using).filter(
                is_active=True, product_id__in=[str(p) for p in order.product_ids],
            )
        ]
        category_rates = [
            BonusRate(rate.category_id, rate.category_name, rate.bonus_rate)
            for rate in CategoryCommissionRate.objects.using(self.using).filter(
                is_active=True, category_id__in=[str(c) for c in order.category_ids],
            )
        ]
        team_boost = agent.team.boost_rate.value if agent.team_id else None

        return self.calculator.calculate(
            order,
            agent_status=agent.agent_status,
            base_rate=agent.rate,
            tier=agent.tier_level,
            volume_tiers=tiers,
            product_rates=product_rates,
            category_rates=category_rates,
            team_boost=team_boost,
        )

    @staticmethod
    def _require_agent_id(order: OrderContext):
        if not order.agent_id:
            raise ValidationError("Agent ID is required")

    def calculate_commission(self, order: OrderContext) -> CommissionCalculationResult:
        """Calculate the commission an order would earn, without recording it."""
        self._require_agent_id(order)
        agent = self._get_agent(order.agent_id)
        return self._calculate(agent, order)

    def record_commission(self, order: OrderContext, notes: str = '') -> Commission:
        """Calculate and persist a pending commission for a completed order."""
        self._require_agent_id(order)
        with transaction.atomic(using=self.using):
            agent = self._get_agent(order.agent_id, lock=True)

            duplicate = Commission.objects.using(self.using).filter(
                agent=agent, order_id=str(order.order_id),
            ).exclude(status=CommissionStatus.CANCELLED).exists()
            if duplicate:
                logger.warning(f"Order {order.order_id} already has a commission for agent {agent.code}")
                raise DuplicateCommission(
                    f"Order {order.order_id} already has a commission for agent {agent.pk}"
                )

            result = self._calculate(agent, order)
            commission = Commission.build(
                agent.pk,
                order.order_id,
                order.order_total,
                result.rate.value,
                amount=result.amount,
                based_on_amount=result.based_on_amount,
                breakdown=result.breakdown_json(),
                tier_applied=result.tier_json(),
                notes=notes,
            )
            commission.save(using=self.using)
            events = commission.created_events()

        logger.info(
            f"Commission {commission.pk} recorded: agent={agent.code} order={commission.order_id} "
            f"amount={commission.amount} rate={commission.rate}"
        )
        publish(Commission, events, using=self.using)
        return commission

    # ==================== Lifecycle ====================

    def approve_commission(self, commission_id: int) -> Commission:
        """Approve a pending commission and credit the agent's earnings."""
        with transaction.atomic(using=self.using):
            commission = self._lock_commission(commission_id)
            events = commission.approve()
            commission.save(using=self.using, update_fields=['status', 'approved_at', 'updated_at'])

            agent = self._get_agent(commission.agent_id, lock=True)
            agent.apply_events(events)
            agent.save(using=self.using, update_fields=['total_earned', 'updated_at'])

        logger.info(f"Commission {commission.pk} approved: {commission.amount} credited to agent {agent.code}")
        publish(Commission, events, using=self.using)
        return commission

    def mark_commission_paid(self, commission_id: int) -> Commission:
        """Pay a single approved commission outside of a payout."""
        with transaction.atomic(using=self.using):
            commission = self._lock_commission(commission_id)
            self._ensure_not_in_open_payout(commission, 'pay')
            events = commission.mark_as_paid()
            commission.save(using=self.using, update_fields=['status', 'paid_at', 'updated_at'])

        logger.info(f"Commission {commission.pk} marked as paid")
        publish(Commission, events, using=self.using)
        return commission

    def cancel_commission(self, commission_id: int, reason: str = '') -> Commission:
        with transaction.atomic(using=self.using):
            commission = self._lock_commission(commission_id)
            self._ensure_not_in_open_payout(commission, 'cancel')
            events = commission.cancel(reason)
            commission.save(
                using=self.using,
                update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'],
            )

        logger.info(f"Commission {commission.pk} cancelled: {reason or 'no reason given'}")
        publish(Commission, events, using=self.using)
        return commission
