"""Domain events returned by mutating operations."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from django.utils import timezone


@dataclass(frozen=True)
class DomainEvent:
    event_type = 'event'

    aggregate_id: Optional[int]
    occurred_at: datetime = field(default_factory=timezone.now, kw_only=True)


# Agent

@dataclass(frozen=True)
class AgentCreated(DomainEvent):
    event_type = 'agent.created'

    code: str = ''
    name: str = ''


@dataclass(frozen=True)
class AgentStatusChanged(DomainEvent):
    event_type = 'agent.status_changed'

    new_status: str = ''
    reason: str = ''


@dataclass(frozen=True)
class AgentPromoted(DomainEvent):
    event_type = 'agent.promoted'

    new_tier: str = ''


# Commission

@dataclass(frozen=True)
class CommissionCreated(DomainEvent):
    event_type = 'commission.created'

    agent_id: Optional[int] = None
    order_id: str = ''
    amount: Decimal = Decimal('0')


@dataclass(frozen=True)
class CommissionApproved(DomainEvent):
    event_type = 'commission.approved'

    agent_id: Optional[int] = None
    amount: Decimal = Decimal('0')


@dataclass(frozen=True)
class CommissionPaid(DomainEvent):
    event_type = 'commission.paid'

    agent_id: Optional[int] = None
    amount: Decimal = Decimal('0')


@dataclass(frozen=True)
class CommissionCancelled(DomainEvent):
    event_type = 'commission.cancelled'

    agent_id: Optional[int] = None
    reason: str = ''


# Payout

@dataclass(frozen=True)
class PayoutCompleted(DomainEvent):
    event_type = 'payout.completed'

    agent_id: Optional[int] = None
    amount: Decimal = Decimal('0')
    commission_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class PayoutFailed(DomainEvent):
    event_type = 'payout.failed'

    agent_id: Optional[int] = None
    reason: str = ''
