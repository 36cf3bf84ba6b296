from django.apps import AppConfig


class AgentCommissionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "agent_commissions"
    verbose_name = "Agent Commissions"
