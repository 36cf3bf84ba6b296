from .agent_service import AgentService
from .calculator import (
    BonusRate,
    BreakdownItem,
    CommissionCalculationResult,
    CommissionCalculator,
    OrderContext,
    TierRate,
)
from .commission_service import CommissionService
from .payout_service import PayoutService
from .reporting_service import AgentStats, Dashboard, MonthlyPerformance, ReportingService

__all__ = [
    'AgentService',
    'AgentStats',
    'BonusRate',
    'BreakdownItem',
    'CommissionCalculationResult',
    'CommissionCalculator',
    'CommissionService',
    'Dashboard',
    'MonthlyPerformance',
    'OrderContext',
    'PayoutService',
    'ReportingService',
    'TierRate',
]
