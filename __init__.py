"""Agent commissions: reseller agents, commission accrual and payouts."""
