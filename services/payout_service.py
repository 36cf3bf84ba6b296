"""
Payout Service - batches approved commissions into payouts.
"""
import logging
from datetime import datetime
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from ..exceptions import AgentNotEligible, AgentNotFound, BelowMinimumPayout, PayoutNotFound
from ..models import Agent, Commission, CommissionsConfig, Payout, PayoutItem
from ..signals import publish
from ..values import CommissionStatus, PayoutLine, PayoutStatus, parse_period

logger = logging.getLogger(__name__)


def period_bounds(period: str):
    """Return the [start, end) datetimes of a YYYY-MM period in the current time zone."""
    year, month = parse_period(period)
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return timezone.make_aware(start), timezone.make_aware(end)


class PayoutService:
    """Service class for payout operations."""

    def __init__(self, using: str = 'default'):
        self.using = using

    def get_payout(self, payout_id: int) -> Payout:
        try:
            return Payout.objects.using(self.using).prefetch_related('items').get(pk=payout_id)
        except Payout.DoesNotExist:
            raise PayoutNotFound(f"Payout {payout_id} not found") from None

    def get_payouts(
        self,
        agent_id: Optional[int] = None,
        status: Optional[str] = None,
        period: Optional[str] = None,
    ) -> List[Payout]:
        """Get payouts with filters."""
        qs = Payout.objects.using(self.using).all()

        if agent_id:
            qs = qs.filter(agent_id=agent_id)
        if status:
            qs = qs.filter(status=PayoutStatus.parse(status))
        if period:
            parse_period(period)
            qs = qs.filter(period=period)

        return list(qs.order_by('-created_at', '-id'))

    def _lock_payout(self, payout_id) -> Payout:
        try:
            return Payout.objects.using(self.using).select_for_update().get(pk=payout_id)
        except Payout.DoesNotExist:
            raise PayoutNotFound(f"Payout {payout_id} not found") from None

    def create_payout(self, agent_id: int, period: str, notes: str = '') -> Payout:
        """
        Create a pending payout from the agent's approved, unassigned
        commissions created during ``period`` (YYYY-MM).

        Raises:
            InvalidPeriod: malformed period.
            AgentNotFound / AgentNotEligible: unknown or non-active agent.
            NoCommissions: nothing to pay out.
            BelowMinimumPayout: total under the configured minimum.
        """
        start, end = period_bounds(period)

        with transaction.atomic(using=self.using):
            try:
                agent = Agent.objects.using(self.using).select_for_update().get(pk=agent_id)
            except Agent.DoesNotExist:
                raise AgentNotFound(f"Agent {agent_id} not found") from None
            if not agent.can_receive_payout:
                logger.warning(f"Payout refused for agent {agent.code}: status {agent.status}")
                raise AgentNotEligible(f"Agent {agent.code} is {agent.status} and cannot receive payouts")

            commissions = list(
                Commission.objects.using(self.using).select_for_update().filter(
                    agent=agent,
                    status=CommissionStatus.APPROVED,
                    payout__isnull=True,
                    created_at__gte=start,
                    created_at__lt=end,
                ).order_by('created_at', 'id')
            )
            payout = Payout.build(
                agent.pk, period,
                [PayoutLine(c.pk, c.order_id, c.amount) for c in commissions],
            )

            minimum = CommissionsConfig.get_config(using=self.using).minimum_payout_amount
            if minimum > 0 and payout.amount < minimum:
                logger.warning(f"Payout refused for agent {agent.code}: {payout.amount} below minimum {minimum}")
                raise BelowMinimumPayout(
                    f"Total amount {payout.amount} is below minimum payout {minimum}"
                )

            payout.notes = notes
            payout.save(using=self.using)
            PayoutItem.objects.using(self.using).bulk_create([
                PayoutItem(payout=payout, commission_id=line.commission_id,
                           order_id=line.order_id, amount=line.amount)
                for line in payout.lines
            ])
            Commission.objects.using(self.using).filter(
                pk__in=payout.commission_ids,
            ).update(payout=payout, updated_at=timezone.now())

        logger.info(
            f"Payout {payout.reference} created for agent {agent.code}: "
            f"{payout.commission_count} commissions, {payout.amount}"
        )
        return payout

    def process_payout(self, payout_id: int) -> Payout:
        with transaction.atomic(using=self.using):
            payout = self._lock_payout(payout_id)
            events = payout.process()
            payout.save(using=self.using, update_fields=['status', 'updated_at'])

        logger.info(f"Payout {payout.reference} processing")
        publish(Payout, events, using=self.using)
        return payout

    def complete_payout(self, payout_id: int) -> Payout:
        """Complete a processing payout and mark its commissions paid."""
        with transaction.atomic(using=self.using):
            payout = self._lock_payout(payout_id)
            events = payout.complete()
            payout.save(using=self.using, update_fields=['status', 'paid_at', 'updated_at'])

            commissions = Commission.objects.using(self.using).select_for_update().filter(
                pk__in=payout.commission_ids,
            ).order_by('id')
            for commission in commissions:
                events += commission.mark_as_paid(paid_at=payout.paid_at)
                commission.save(using=self.using, update_fields=['status', 'paid_at', 'updated_at'])

        logger.info(f"Payout {payout.reference} completed: {payout.amount} paid")
        publish(Payout, events, using=self.using)
        return payout

    def fail_payout(self, payout_id: int, reason: str = '') -> Payout:
        """Fail a processing payout. Its commissions stay approved and assigned."""
        with transaction.atomic(using=self.using):
            payout = self._lock_payout(payout_id)
            events = payout.fail(reason)
            payout.save(using=self.using, update_fields=['status', 'failed_at', 'failure_reason', 'updated_at'])

        logger.warning(f"Payout {payout.reference} failed: {reason}")
        publish(Payout, events, using=self.using)
        return payout

    def retry_payout(self, payout_id: int) -> Payout:
        with transaction.atomic(using=self.using):
            payout = self._lock_payout(payout_id)
            events = payout.retry()
            payout.save(using=self.using, update_fields=['status', 'updated_at'])

        logger.info(f"Payout {payout.reference} queued for retry")
        publish(Payout, events, using=self.using)
        return payout

    def cancel_payout(self, payout_id: int, reason: str = '') -> Payout:
        """Cancel a pending payout and release its commissions."""
        with transaction.atomic(using=self.using):
            payout = self._lock_payout(payout_id)
            events = payout.cancel(reason)
            payout.save(using=self.using, update_fields=['status', 'notes', 'updated_at'])

            released = Commission.objects.using(self.using).filter(
                payout=payout, status=CommissionStatus.APPROVED,
            ).update(payout=None, updated_at=timezone.now())

        logger.info(f"Payout {payout.reference} cancelled, {released} commissions released")
        publish(Payout, events, using=self.using)
        return payout
