"""
Agent Service - agent and team administration.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from django.db import transaction

from ..exceptions import AgentNotFound, TeamNotFound, ValidationError
from ..models import Agent, CommissionsConfig, Team, VolumeTier
from ..signals import publish
from ..values import AgentStatus, AgentTier, CommissionRate
from .calculator import CommissionCalculator, TierRate

logger = logging.getLogger(__name__)


class AgentService:
    """Service class for agent and team operations."""

    def __init__(self, using: str = 'default'):
        self.using = using

    # ==================== Agents ====================

    def get_agent(self, agent_id: int) -> Agent:
        try:
            return Agent.objects.using(self.using).select_related('team').get(pk=agent_id)
        except Agent.DoesNotExist:
            raise AgentNotFound(f"Agent {agent_id} not found") from None

    def get_agent_by_email(self, email: str) -> Agent:
        try:
            return Agent.objects.using(self.using).select_related('team').get(email__iexact=email)
        except Agent.DoesNotExist:
            raise AgentNotFound(f"No agent with email {email}") from None

    def get_agent_by_code(self, code: str) -> Agent:
        try:
            return Agent.objects.using(self.using).select_related('team').get(code=code)
        except Agent.DoesNotExist:
            raise AgentNotFound(f"No agent with code {code}") from None

    def get_agents(self, status: Optional[str] = None, team_id: Optional[int] = None) -> List[Agent]:
        qs = Agent.objects.using(self.using).select_related('team')
        if status:
            qs = qs.filter(status=AgentStatus.parse(status))
        if team_id:
            qs = qs.filter(team_id=team_id)
        return list(qs.order_by('code'))

    def register_agent(
        self,
        name: str,
        email: str,
        phone: str = '',
        code: str = '',
        commission_rate: Optional[Decimal] = None,
        tier: str = AgentTier.BRONZE,
        status: str = AgentStatus.ACTIVE,
        team_id: Optional[int] = None,
    ) -> Agent:
        """Register a new agent. The rate defaults to the configured default rate."""
        if not name:
            raise ValidationError("Agent name is required")
        if not email:
            raise ValidationError("Agent email is required")

        if commission_rate is None:
            commission_rate = CommissionsConfig.get_config(using=self.using).default_commission_rate

        with transaction.atomic(using=self.using):
            if Agent.objects.using(self.using).filter(email__iexact=email).exists():
                raise ValidationError(f"An agent with email {email} already exists")
            if code and Agent.objects.using(self.using).filter(code=code).exists():
                raise ValidationError(f"An agent with code {code} already exists")

            agent = Agent(
                code=code,
                name=name,
                email=email,
                phone=phone,
                commission_rate=CommissionRate(commission_rate).value,
                tier=AgentTier.parse(tier),
                status=AgentStatus.parse(status),
                team=self._get_team(team_id) if team_id else None,
            )
            agent.save(using=self.using)

        logger.info(f"Agent {agent.code} registered ({agent.email})")
        publish(Agent, agent.registered_events(), using=self.using)
        return agent

    def _update_agent(self, agent_id, mutate, fields, message):
        with transaction.atomic(using=self.using):
            try:
                agent = Agent.objects.using(self.using).select_for_update().get(pk=agent_id)
            except Agent.DoesNotExist:
                raise AgentNotFound(f"Agent {agent_id} not found") from None
            events = mutate(agent) or []
            agent.save(using=self.using, update_fields=fields + ['updated_at'])

        logger.info(f"Agent {agent.code}: {message}")
        publish(Agent, events, using=self.using)
        return agent

    def set_commission_rate(self, agent_id: int, rate) -> Agent:
        return self._update_agent(
            agent_id, lambda a: a.set_commission_rate(rate), ['commission_rate'],
            f"commission rate set to {rate}",
        )

    def set_tier(self, agent_id: int, tier) -> Agent:
        return self._update_agent(agent_id, lambda a: a.set_tier(tier), ['tier'], f"tier set to {tier}")

    def promote_tier(self, agent_id: int) -> Agent:
        return self._update_agent(agent_id, lambda a: a.promote_tier(), ['tier'], "promoted")

    def activate_agent(self, agent_id: int) -> Agent:
        return self._update_agent(agent_id, lambda a: a.activate(), ['status'], "activated")

    def suspend_agent(self, agent_id: int, reason: str = '') -> Agent:
        return self._update_agent(
            agent_id, lambda a: a.suspend(reason), ['status'], f"suspended {reason}".strip(),
        )

    def deactivate_agent(self, agent_id: int) -> Agent:
        return self._update_agent(agent_id, lambda a: a.deactivate(), ['status'], "deactivated")

    def assign_team(self, agent_id: int, team_id: int) -> Agent:
        team = self._get_team(team_id)
        return self._update_agent(
            agent_id, lambda a: a.assign_to_team(team), ['team'], f"assigned to team {team.code}",
        )

    def remove_from_team(self, agent_id: int) -> Agent:
        return self._update_agent(agent_id, lambda a: a.remove_from_team(), ['team'], "removed from team")

    def configure_volume_tiers(self, agent_id: int, tiers: Iterable) -> List[VolumeTier]:
        """
        Replace the agent's volume tiers.

        ``tiers`` holds TierRate values or (min_amount, max_amount, rate) tuples;
        overlapping ranges are rejected.
        """
        ordered = CommissionCalculator.validate_tiers(
            tier if isinstance(tier, TierRate) else TierRate(*tier) for tier in tiers
        )
        agent = self.get_agent(agent_id)

        with transaction.atomic(using=self.using):
            VolumeTier.objects.using(self.using).filter(agent=agent).delete()
            created = VolumeTier.objects.using(self.using).bulk_create([
                VolumeTier(agent=agent, min_amount=t.min_amount, max_amount=t.max_amount, rate=t.rate)
                for t in ordered
            ])

        logger.info(f"Agent {agent.code}: {len(created)} volume tiers configured")
        return created

    # ==================== Teams ====================

    def _get_team(self, team_id) -> Team:
        try:
            return Team.objects.using(self.using).get(pk=team_id)
        except Team.DoesNotExist:
            raise TeamNotFound(f"Team {team_id} not found") from None

    def get_team(self, team_id: int) -> Team:
        return self._get_team(team_id)

    def create_team(
        self,
        code: str,
        name: str,
        description: str = '',
        commission_boost=Decimal('0'),
        target_monthly=Decimal('0'),
    ) -> Team:
        if Team.objects.using(self.using).filter(code=code).exists():
            raise ValidationError(f"A team with code {code} already exists")
        team = Team(code=code, name=name, description=description)
        team.set_commission_boost(commission_boost)
        team.set_target(target_monthly)
        team.save(using=self.using)
        logger.info(f"Team {team.code} created")
        return team

    def _update_team(self, team_id, mutate, fields, message):
        with transaction.atomic(using=self.using):
            try:
                team = Team.objects.using(self.using).select_for_update().get(pk=team_id)
            except Team.DoesNotExist:
                raise TeamNotFound(f"Team {team_id} not found") from None
            mutate(team)
            team.save(using=self.using, update_fields=fields + ['updated_at'])

        logger.info(f"Team {team.code}: {message}")
        return team

    def set_team_boost(self, team_id: int, rate) -> Team:
        return self._update_team(
            team_id, lambda t: t.set_commission_boost(rate), ['commission_boost'], f"boost set to {rate}",
        )

    def set_team_target(self, team_id: int, target) -> Team:
        return self._update_team(
            team_id, lambda t: t.set_target(target), ['target_monthly'], f"target set to {target}",
        )

    def set_team_leader(self, team_id: int, agent_id: Optional[int]) -> Team:
        if agent_id is None:
            return self._update_team(team_id, lambda t: t.remove_leader(), ['leader'], "leader removed")
        leader = self.get_agent(agent_id)
        return self._update_team(
            team_id, lambda t: t.set_leader(leader), ['leader'], f"leader set to {leader.code}",
        )

    def activate_team(self, team_id: int) -> Team:
        return self._update_team(team_id, lambda t: t.activate(), ['is_active'], "activated")

    def deactivate_team(self, team_id: int) -> Team:
        return self._update_team(team_id, lambda t: t.deactivate(), ['is_active'], "deactivated")
