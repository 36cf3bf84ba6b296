"""Errors raised by the agent commissions module."""


class AgentCommissionsError(Exception):
    """Base class for all agent commissions errors."""


# Validation

class ValidationError(AgentCommissionsError, ValueError):
    """Malformed input, rejected before any state change."""


class InvalidRange(ValidationError):
    """A percentage outside [0, 100]."""


class InvalidPeriod(ValidationError):
    """A payout period that is not a YYYY-MM token."""


class DuplicateCommission(ValidationError):
    """The order already has a live commission for the agent."""


class BelowMinimumPayout(ValidationError):
    """The payout total is below the configured minimum."""


# State transitions

class StateTransitionError(AgentCommissionsError):
    """An invalid status transition was attempted. The entity is unchanged."""

    def __init__(self, message, current=None, target=None):
        super().__init__(message)
        self.current = current
        self.target = target


class InvalidTransition(StateTransitionError):
    pass


class NotApproved(StateTransitionError):
    """Commission must be approved before payment."""


class AlreadyTerminal(StateTransitionError):
    """The entity is already paid, completed or cancelled."""


# Eligibility

class NotEligibleError(AgentCommissionsError):
    """The agent may not earn commission or receive payouts."""


class AgentNotEligible(NotEligibleError):
    pass


# Lookups

class NotFoundError(AgentCommissionsError, LookupError):
    """A referenced record does not exist."""


class AgentNotFound(NotFoundError):
    pass


class CommissionNotFound(NotFoundError):
    pass


class PayoutNotFound(NotFoundError):
    pass


class TeamNotFound(NotFoundError):
    pass


# Payouts

class NoCommissions(AgentCommissionsError):
    """No approved commissions to pay out."""
