"""
Agent Commissions Module Configuration

This file defines the module metadata and default settings for the
Agent Commissions module: reseller agents, commission accrual on
attributed orders and periodic payouts.
"""
from decimal import Decimal

from django.utils.translation import gettext_lazy as _

# Module Identification
MODULE_ID = "agent_commissions"
MODULE_NAME = _("Agent Commissions")
MODULE_ICON = "people-outline"
MODULE_VERSION = "1.0.0"
MODULE_CATEGORY = "sales"

# Module Dependencies (upstream collaborators, not Django apps)
DEPENDENCIES = ["orders>=1.0.0", "identity>=1.0.0"]

# Default Settings (overridable through settings.AGENT_COMMISSIONS)
SETTINGS = {
    "default_commission_rate": Decimal("10.00"),
    "minimum_payout_amount": Decimal("0.00"),
    "agent_code_prefix": "AGT",
    "payout_reference_prefix": "PAY",
}

# Permissions - tuple format (action_suffix, display_name)
PERMISSIONS = [
    ("view_agent", _("Can view agents")),
    ("manage_agent", _("Can manage agents")),
    ("view_commission", _("Can view commissions")),
    ("approve_commission", _("Can approve commissions")),
    ("cancel_commission", _("Can cancel commissions")),
    ("view_payout", _("Can view payouts")),
    ("process_payout", _("Can process payouts")),
    ("view_settings", _("Can view settings")),
    ("change_settings", _("Can change settings")),
]

# Role-based permission assignments
ROLE_PERMISSIONS = {
    "admin": ["*"],  # All permissions
    "manager": [
        "view_agent",
        "manage_agent",
        "view_commission",
        "approve_commission",
        "cancel_commission",
        "view_payout",
        "process_payout",
        "view_settings",
    ],
    "agent": [
        "view_commission",
        "view_payout",
    ],
}
