"""
Tests for agent commissions models.
"""
import pytest
from decimal import Decimal

from agent_commissions.events import (
    AgentPromoted,
    AgentStatusChanged,
    CommissionApproved,
    CommissionCancelled,
    CommissionPaid,
    PayoutCompleted,
    PayoutFailed,
)
from agent_commissions.exceptions import (
    AlreadyTerminal,
    InvalidRange,
    InvalidTransition,
    NoCommissions,
    NotApproved,
    ValidationError,
)
from agent_commissions.models import (
    Agent,
    Commission,
    CommissionsConfig,
    Payout,
    Team,
)
from agent_commissions.values import CommissionStatus, PayoutLine, PayoutStatus


@pytest.mark.django_db
class TestCommissionsConfig:
    """Tests for CommissionsConfig model."""

    def test_config_singleton(self, commissions_config):
        """Test config is singleton (pk=1)."""
        config2 = CommissionsConfig.objects.get(pk=1)
        assert config2.id == commissions_config.id

    def test_config_defaults(self, db):
        """Test config default values."""
        CommissionsConfig.objects.all().delete()
        config = CommissionsConfig.objects.create()
        assert config.pk == 1  # Always pk=1
        assert config.default_commission_rate == Decimal('10.00')
        assert config.minimum_payout_amount == Decimal('0.00')

    def test_config_defaults_follow_project_settings(self, db, settings):
        """Test project overrides seed the config."""
        settings.AGENT_COMMISSIONS = {'minimum_payout_amount': Decimal('25.00')}
        CommissionsConfig.objects.all().delete()
        config = CommissionsConfig.get_config()
        assert config.minimum_payout_amount == Decimal('25.00')

    def test_config_str(self, commissions_config):
        assert 'Commissions' in str(commissions_config)


@pytest.mark.django_db
class TestTeam:
    """Tests for Team model."""

    def test_create_team(self, team):
        assert team.code == 'NORTH'
        assert team.commission_boost == Decimal('0.00')
        assert team.is_active is True
        assert not team.has_leader

    def test_set_commission_boost(self, team):
        team.set_commission_boost(Decimal('2.5'))
        assert team.boost_rate.value == Decimal('2.5')

    def test_set_commission_boost_out_of_range(self, team):
        with pytest.raises(InvalidRange):
            team.set_commission_boost(Decimal('120'))

    def test_inactive_team_grants_no_boost(self, team):
        """Test an inactive team contributes no boost."""
        team.set_commission_boost(Decimal('3'))
        team.deactivate()
        assert team.boost_rate.is_zero

    def test_negative_target_rejected(self, team):
        with pytest.raises(ValidationError):
            team.set_target(Decimal('-1'))

    def test_leader(self, team, agent):
        team.set_leader(agent)
        team.save()
        team.refresh_from_db()
        assert team.leader_id == agent.pk
        team.remove_leader()
        assert not team.has_leader

    def test_members_back_reference(self, team, agent):
        """Test agents referencing a team are its members."""
        agent.assign_to_team(team)
        agent.save()
        assert list(team.members.all()) == [agent]


@pytest.mark.django_db
class TestAgent:
    """Tests for Agent model."""

    def test_code_generated(self, agent):
        """Test agent code is generated when not supplied."""
        assert agent.code == 'AGT0001'

    def test_code_sequence(self, agent, other_agent):
        assert other_agent.code == 'AGT0002'

    def test_explicit_code_kept(self, commissions_config):
        agent = Agent.objects.create(code='RESELLER-1', name='Ann', email='ann@example.com')
        assert agent.code == 'RESELLER-1'

    def test_defaults(self, commissions_config):
        agent = Agent.objects.create(name='Ann', email='ann@example.com')
        assert agent.commission_rate == Decimal('10.00')
        assert agent.tier == 'bronze'
        assert agent.status == 'active'
        assert agent.total_earned == Decimal('0.00')

    def test_str(self, agent):
        assert agent.code in str(agent)
        assert agent.name in str(agent)

    def test_effective_rate_adds_tier_bonus(self, agent):
        """Test effective rate = base rate + tier bonus."""
        agent.set_tier('gold')
        assert agent.effective_commission_rate.value == Decimal('12.00')

    def test_set_commission_rate_validates(self, agent):
        with pytest.raises(InvalidRange):
            agent.set_commission_rate(Decimal('101'))
        assert agent.commission_rate == Decimal('10.00')

    def test_promote_tier(self, agent):
        events = agent.promote_tier()
        assert agent.tier == 'silver'
        assert events == [AgentPromoted(agent.pk, new_tier='silver', occurred_at=events[0].occurred_at)]

    def test_promote_at_top_fails(self, agent):
        agent.set_tier('platinum')
        with pytest.raises(InvalidTransition):
            agent.promote_tier()
        assert agent.tier == 'platinum'

    def test_activate_from_inactive(self, agent):
        agent.deactivate()
        events = agent.activate()
        assert agent.status == 'active'
        assert isinstance(events[0], AgentStatusChanged)

    def test_activate_from_suspended_fails(self, agent):
        agent.suspend()
        with pytest.raises(InvalidTransition):
            agent.activate()
        assert agent.status == 'suspended'

    def test_suspend_is_idempotent(self, agent):
        events = agent.suspend('fraud check')
        assert events == [AgentStatusChanged(
            agent.pk, new_status='suspended', reason='fraud check', occurred_at=events[0].occurred_at,
        )]
        assert agent.suspend('again') == []
        assert agent.status == 'suspended'

    def test_suspended_agent_cannot_earn(self, agent):
        agent.suspend()
        assert not agent.can_earn_commission
        assert not agent.can_receive_payout

    def test_record_earnings_rejects_negative(self, agent):
        with pytest.raises(ValidationError):
            agent.record_earnings(Decimal('-1'))

    def test_apply_events_credits_approvals_only(self, agent):
        """Test only approval events for this agent credit earnings."""
        agent.apply_events([
            CommissionApproved(1, agent_id=agent.pk, amount=Decimal('30.00')),
            CommissionPaid(1, agent_id=agent.pk, amount=Decimal('30.00')),
            CommissionApproved(2, agent_id=agent.pk + 100, amount=Decimal('99.00')),
        ])
        assert agent.total_earned == Decimal('30.00')


@pytest.mark.django_db
class TestCommission:
    """Tests for Commission model."""

    def test_build_derives_amount(self, agent):
        """Test amount = rate x order total when not supplied."""
        commission = Commission.build(agent.pk, 'ORD-1', Decimal('250.00'), Decimal('10'))
        assert commission.amount == Decimal('25.00')
        assert commission.status == CommissionStatus.PENDING
        assert commission.pk is None

    def test_build_keeps_supplied_amount(self, agent):
        commission = Commission.build(agent.pk, 'ORD-1', Decimal('250.00'), Decimal('10'), amount=Decimal('31.40'))
        assert commission.amount == Decimal('31.40')

    @pytest.mark.parametrize('agent_id,order_id,total,rate,error', [
        (None, 'ORD-1', '100', '10', ValidationError),
        (1, '', '100', '10', ValidationError),
        (1, 'ORD-1', '0', '10', ValidationError),
        (1, 'ORD-1', '-5', '10', ValidationError),
        (1, 'ORD-1', '100', '101', InvalidRange),
    ])
    def test_build_validation(self, agent_id, order_id, total, rate, error):
        with pytest.raises(error):
            Commission.build(agent_id, order_id, Decimal(total), Decimal(rate))

    def test_amount_frozen_after_rate_change(self, pending_commission, agent):
        """Test changing the agent's rate never recomputes the amount."""
        agent.set_commission_rate(Decimal('50'))
        agent.save()
        pending_commission.refresh_from_db()
        assert pending_commission.amount == Decimal('50.00')

    def test_approve(self, pending_commission):
        events = pending_commission.approve()
        assert pending_commission.status == CommissionStatus.APPROVED
        assert pending_commission.approved_at is not None
        assert isinstance(events[0], CommissionApproved)
        assert events[0].amount == Decimal('50.00')

    def test_approve_twice_fails(self, approved_commission):
        with pytest.raises(InvalidTransition):
            approved_commission.approve()

    def test_mark_as_paid_requires_approval(self, pending_commission):
        """Test a failed transition leaves the commission unchanged."""
        before = pending_commission.updated_at
        with pytest.raises(NotApproved):
            pending_commission.mark_as_paid()
        assert pending_commission.status == CommissionStatus.PENDING
        assert pending_commission.paid_at is None
        assert pending_commission.updated_at == before

    def test_mark_as_paid(self, approved_commission):
        events = approved_commission.mark_as_paid()
        assert approved_commission.status == CommissionStatus.PAID
        assert approved_commission.paid_at is not None
        assert isinstance(events[0], CommissionPaid)

    @pytest.mark.parametrize('status', ['pending', 'approved'])
    def test_cancel(self, make_commission, status):
        commission = make_commission('ORD-9', '90.00', status=status)
        events = commission.cancel('customer refund')
        assert commission.status == CommissionStatus.CANCELLED
        assert commission.cancellation_reason == 'customer refund'
        assert isinstance(events[0], CommissionCancelled)

    @pytest.mark.parametrize('status', ['paid', 'cancelled'])
    def test_cancel_terminal_fails(self, make_commission, status):
        commission = make_commission('ORD-9', '90.00', status=status)
        with pytest.raises(AlreadyTerminal):
            commission.cancel()


@pytest.mark.django_db
class TestPayout:
    """Tests for Payout model."""

    def lines(self):
        return [
            PayoutLine(1, 'ORD-1', Decimal('50.00')),
            PayoutLine(2, 'ORD-2', Decimal('75.00')),
            PayoutLine(3, 'ORD-3', Decimal('25.00')),
        ]

    def test_build_sums_lines(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        assert payout.amount == Decimal('150.00')
        assert payout.item_count == 3
        assert payout.commission_ids == [1, 2, 3]
        assert payout.status == PayoutStatus.PENDING

    def test_build_empty_fails(self, agent):
        with pytest.raises(NoCommissions):
            Payout.build(agent.pk, '2024-06', [])

    def test_build_duplicate_commission_fails(self, agent):
        """Test a commission can appear only once."""
        lines = self.lines() + [PayoutLine(1, 'ORD-1-again', Decimal('5.00'))]
        with pytest.raises(ValidationError):
            Payout.build(agent.pk, '2024-06', lines)

    def test_reference_generated(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        payout.save()
        assert payout.reference.startswith('PAY-')
        assert payout.reference.endswith('-0001')

    def test_lifecycle(self, agent):
        """Test pending -> processing -> completed."""
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        payout.process()
        assert payout.status == PayoutStatus.PROCESSING
        events = payout.complete()
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.paid_at is not None
        assert events[0] == PayoutCompleted(
            None, agent_id=agent.pk, amount=Decimal('150.00'),
            commission_ids=(1, 2, 3), occurred_at=events[0].occurred_at,
        )

    def test_complete_requires_processing(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        with pytest.raises(InvalidTransition):
            payout.complete()
        assert payout.paid_at is None

    def test_fail_and_retry(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        payout.process()
        events = payout.fail('bank rejected transfer')
        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == 'bank rejected transfer'
        assert isinstance(events[0], PayoutFailed)
        payout.retry()
        assert payout.status == PayoutStatus.PENDING

    def test_retry_only_from_failed(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        with pytest.raises(InvalidTransition):
            payout.retry()

    def test_cancel_completed_fails(self, agent):
        payout = Payout.build(agent.pk, '2024-06', self.lines())
        payout.process()
        payout.complete()
        with pytest.raises(AlreadyTerminal):
            payout.cancel()


COMMISSION_ACTIONS = [
    ('approve', CommissionStatus.APPROVED, InvalidTransition),
    ('mark_as_paid', CommissionStatus.PAID, NotApproved),
    ('cancel', CommissionStatus.CANCELLED, AlreadyTerminal),
]
COMMISSION_ALLOWED = {
    (CommissionStatus.PENDING, 'approve'),
    (CommissionStatus.PENDING, 'cancel'),
    (CommissionStatus.APPROVED, 'mark_as_paid'),
    (CommissionStatus.APPROVED, 'cancel'),
}


@pytest.mark.parametrize('source', list(CommissionStatus))
@pytest.mark.parametrize('action, target, error', COMMISSION_ACTIONS)
def test_commission_transition_grid(source, action, target, error):
    """Every commission action from every status: allowed moves apply, others leave the row untouched."""
    commission = Commission.build(1, 'ORD-1', Decimal('100'), Decimal('10'))
    commission.status = source
    before = (
        commission.status, commission.approved_at, commission.paid_at,
        commission.cancelled_at, commission.updated_at,
    )

    if (source, action) in COMMISSION_ALLOWED:
        events = getattr(commission, action)()
        assert commission.status == target
        assert len(events) == 1
        return

    with pytest.raises(error) as exc_info:
        getattr(commission, action)()
    assert type(exc_info.value) is error
    assert exc_info.value.current == source
    assert (
        commission.status, commission.approved_at, commission.paid_at,
        commission.cancelled_at, commission.updated_at,
    ) == before


PAYOUT_ACTIONS = [
    ('process', PayoutStatus.PROCESSING),
    ('complete', PayoutStatus.COMPLETED),
    ('fail', PayoutStatus.FAILED),
    ('retry', PayoutStatus.PENDING),
    ('cancel', PayoutStatus.CANCELLED),
]
PAYOUT_ALLOWED = {
    (PayoutStatus.PENDING, 'process'),
    (PayoutStatus.PENDING, 'cancel'),
    (PayoutStatus.PROCESSING, 'complete'),
    (PayoutStatus.PROCESSING, 'fail'),
    (PayoutStatus.FAILED, 'retry'),
}
PAYOUT_TERMINAL = {PayoutStatus.COMPLETED, PayoutStatus.CANCELLED}


@pytest.mark.parametrize('source', list(PayoutStatus))
@pytest.mark.parametrize('action, target', PAYOUT_ACTIONS)
def test_payout_transition_grid(source, action, target):
    """Every payout action from every status; terminal sources raise AlreadyTerminal."""
    payout = Payout.build(1, '2024-06', [PayoutLine(1, 'ORD-1', Decimal('50.00'))])
    payout.status = source
    before = (payout.status, payout.paid_at, payout.failed_at, payout.updated_at)

    if (source, action) in PAYOUT_ALLOWED:
        getattr(payout, action)()
        assert payout.status == target
        return

    error = AlreadyTerminal if source in PAYOUT_TERMINAL else InvalidTransition
    with pytest.raises(error) as exc_info:
        getattr(payout, action)()
    assert type(exc_info.value) is error
    assert (payout.status, payout.paid_at, payout.failed_at, payout.updated_at) == before
