"""
Fixtures for agent commissions tests.
"""
import pytest
from datetime import datetime
from decimal import Decimal

from django.utils import timezone


@pytest.fixture
def commissions_config(db):
    """Create commissions config."""
    from agent_commissions.models import CommissionsConfig

    config, _ = CommissionsConfig.objects.get_or_create(
        pk=1,
        defaults={
            'default_commission_rate': Decimal('10.00'),
            'minimum_payout_amount': Decimal('0'),  # No minimum for tests
        }
    )
    return config


@pytest.fixture
def team(db):
    """Create a sales team without boost."""
    from agent_commissions.models import Team

    return Team.objects.create(
        code='NORTH',
        name='North Region',
        target_monthly=Decimal('50000.00'),
    )


@pytest.fixture
def agent(db, commissions_config):
    """Create an active bronze agent at 10%."""
    from agent_commissions.models import Agent

    return Agent.objects.create(
        name='John Doe',
        email='john@example.com',
        phone='555-0100',
        commission_rate=Decimal('10.00'),
    )


@pytest.fixture
def other_agent(db, commissions_config):
    """Create a second active agent."""
    from agent_commissions.models import Agent

    return Agent.objects.create(
        name='Jane Roe',
        email='jane@example.com',
        commission_rate=Decimal('5.00'),
    )


@pytest.fixture
def volume_tiers(agent):
    """Create volume tiers for the agent."""
    from agent_commissions.models import VolumeTier

    return [
        VolumeTier.objects.create(agent=agent, min_amount=Decimal('0'), max_amount=Decimal('1000'), rate=Decimal('5')),
        VolumeTier.objects.create(agent=agent, min_amount=Decimal('1000'), max_amount=Decimal('5000'), rate=Decimal('7.5')),
        VolumeTier.objects.create(agent=agent, min_amount=Decimal('5000'), max_amount=None, rate=Decimal('10')),
    ]


@pytest.fixture
def make_commission(agent):
    """Factory for persisted commissions, optionally backdated."""
    from agent_commissions.models import Commission

    def _make(order_id, order_total, amount=None, status='pending', created_at=None, for_agent=None):
        owner = for_agent or agent
        commission = Commission.build(
            owner.pk, order_id, Decimal(order_total), owner.commission_rate,
            amount=None if amount is None else Decimal(amount),
        )
        commission.status = status
        commission.save()
        if created_at is not None:
            Commission.objects.filter(pk=commission.pk).update(created_at=created_at)
            commission.refresh_from_db()
        return commission

    return _make


@pytest.fixture
def pending_commission(make_commission):
    """Create a pending commission of 50.00 on a 500.00 order."""
    return make_commission('ORD-001', '500.00')


@pytest.fixture
def approved_commission(make_commission):
    """Create an approved commission of 20.00 on a 200.00 order."""
    return make_commission('ORD-002', '200.00', status='approved')


@pytest.fixture
def current_period():
    return timezone.localtime().strftime('%Y-%m')


@pytest.fixture
def fixed_now():
    """A fixed reference instant: 15 June 2024, noon."""
    return timezone.make_aware(datetime(2024, 6, 15, 12, 0))


@pytest.fixture
def captured_events():
    """Collect events published through the domain_event signal."""
    from agent_commissions.signals import domain_event

    events = []

    def receiver(sender, event, **kwargs):
        events.append(event)

    domain_event.connect(receiver, weak=False)
    yield events
    domain_event.disconnect(receiver)
