"""
Reporting Service - read-only rollups over commissions and payouts.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from ..models import Commission, Payout
from ..values import CommissionStatus

ZERO = Decimal('0.00')


@dataclass
class Dashboard:
    total_orders: int
    total_sales: Decimal
    orders_this_month: int
    sales_this_month: Decimal
    pending_commission: Decimal
    approved_commission: Decimal
    paid_commission: Decimal
    total_commission: Decimal
    commission_this_month: Decimal
    average_order_value: Decimal


@dataclass
class MonthlyPerformance:
    year: int
    month: int
    order_count: int
    sales: Decimal
    commission: Decimal
    pending_commission: Decimal
    approved_commission: Decimal
    paid_commission: Decimal

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass
class AgentStats:
    total_commissions: int
    total_commission_amount: Decimal
    pending_commissions: int
    pending_commission_amount: Decimal
    this_month_commission: Decimal
    total_payouts: int


def month_start(moment: datetime) -> datetime:
    """First instant of ``moment``'s month in the current time zone."""
    local = timezone.localtime(moment)
    return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def shift_month(year: int, month: int, offset: int):
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_window(moment: datetime):
    """[start, end) of ``moment``'s calendar month in the current time zone."""
    start = month_start(moment)
    year, month = shift_month(start.year, start.month, 1)
    return start, timezone.make_aware(datetime(year, month, 1))


def _by_status(status):
    return Sum('amount', filter=Q(status=status))


class ReportingService:
    """Aggregation queries for agent dashboards and stats."""

    def __init__(self, using: str = 'default'):
        self.using = using

    def _orders(self, agent_id):
        # Orders are the agent's live (non-cancelled) commission records.
        return Commission.objects.using(self.using).filter(
            agent_id=agent_id,
        ).exclude(status=CommissionStatus.CANCELLED)

    def get_dashboard(self, agent_id: int, now: Optional[datetime] = None) -> Dashboard:
        """Get the dashboard figures for one agent."""
        start, end = month_window(now or timezone.now())
        orders = self._orders(agent_id)

        totals = orders.aggregate(
            count=Count('id'),
            sales=Sum('order_total'),
            pending=_by_status(CommissionStatus.PENDING),
            approved=_by_status(CommissionStatus.APPROVED),
            paid=_by_status(CommissionStatus.PAID),
        )
        monthly = orders.filter(created_at__gte=start, created_at__lt=end).aggregate(
            count=Count('id'),
            sales=Sum('order_total'),
            commission=Sum('amount'),
        )

        total_orders = totals['count'] or 0
        total_sales = totals['sales'] or ZERO
        pending = totals['pending'] or ZERO
        approved = totals['approved'] or ZERO
        paid = totals['paid'] or ZERO

        average = ZERO
        if total_orders:
            average = (total_sales / total_orders).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

        return Dashboard(
            total_orders=total_orders,
            total_sales=total_sales,
            orders_this_month=monthly['count'] or 0,
            sales_this_month=monthly['sales'] or ZERO,
            pending_commission=pending,
            approved_commission=approved,
            paid_commission=paid,
            total_commission=pending + approved + paid,
            commission_this_month=monthly['commission'] or ZERO,
            average_order_value=average,
        )

    def get_monthly_performance(self, agent_id: int, now: Optional[datetime] = None) -> List[MonthlyPerformance]:
        """Trailing 12 calendar months, current month included, oldest first."""
        current = month_start(now or timezone.now())
        first_year, first_month = shift_month(current.year, current.month, -11)
        next_year, next_month = shift_month(current.year, current.month, 1)
        window_start = timezone.make_aware(datetime(first_year, first_month, 1))
        window_end = timezone.make_aware(datetime(next_year, next_month, 1))

        rows = (
            self._orders(agent_id)
            .filter(created_at__gte=window_start, created_at__lt=window_end)
            .annotate(month=TruncMonth('created_at'))
            .values('month')
            .annotate(
                count=Count('id'),
                sales=Sum('order_total'),
                commission=Sum('amount'),
                pending=_by_status(CommissionStatus.PENDING),
                approved=_by_status(CommissionStatus.APPROVED),
                paid=_by_status(CommissionStatus.PAID),
            )
            .order_by('month')
        )
        by_month = {(row['month'].year, row['month'].month): row for row in rows}

        performance = []
        for offset in range(12):
            year, month = shift_month(first_year, first_month, offset)
            row = by_month.get((year, month), {})
            performance.append(MonthlyPerformance(
                year=year,
                month=month,
                order_count=row.get('count') or 0,
                sales=row.get('sales') or ZERO,
                commission=row.get('commission') or ZERO,
                pending_commission=row.get('pending') or ZERO,
                approved_commission=row.get('approved') or ZERO,
                paid_commission=row.get('paid') or ZERO,
            ))
        return performance

    def get_stats(self, agent_id: int, now: Optional[datetime] = None) -> AgentStats:
        start, end = month_window(now or timezone.now())
        commissions = self._orders(agent_id)

        totals = commissions.aggregate(
            count=Count('id'),
            total_amount=Sum('amount'),
            pending_count=Count('id', filter=Q(status=CommissionStatus.PENDING)),
            pending_amount=_by_status(CommissionStatus.PENDING),
            this_month=Sum('amount', filter=Q(created_at__gte=start, created_at__lt=end)),
        )

        return AgentStats(
            total_commissions=totals['count'] or 0,
            total_commission_amount=totals['total_amount'] or ZERO,
            pending_commissions=totals['pending_count'] or 0,
            pending_commission_amount=totals['pending_amount'] or ZERO,
            this_month_commission=totals['this_month'] or ZERO,
            total_payouts=Payout.objects.using(self.using).filter(agent_id=agent_id).count(),
        )

    def get_unpaid_balance(self, agent_id: int) -> Decimal:
        """Approved commissions not yet assigned to a payout."""
        total = Commission.objects.using(self.using).filter(
            agent_id=agent_id,
            status=CommissionStatus.APPROVED,
            payout__isnull=True,
        ).aggregate(total=Sum('amount'))['total']
        return total or ZERO
