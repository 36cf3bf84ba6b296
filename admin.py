from django.contrib import admin, messages

from .exceptions import AgentCommissionsError
from .models import (
    Agent,
    CategoryCommissionRate,
    Commission,
    CommissionsConfig,
    Payout,
    PayoutItem,
    ProductCommissionRate,
    Team,
    VolumeTier,
)
from .services import CommissionService, PayoutService


def run_service_action(model_admin, request, queryset, operation, verb):
    """Apply a service operation to each selected row and report the outcome."""
    done = 0
    for obj in queryset:
        try:
            operation(obj.pk)
        except AgentCommissionsError as e:
            model_admin.message_user(request, f"{obj}: {e}", messages.ERROR)
        else:
            done += 1
    if done:
        model_admin.message_user(request, f"{done} {verb}", messages.SUCCESS)


@admin.register(CommissionsConfig)
class CommissionsConfigAdmin(admin.ModelAdmin):
    list_display = ['id', 'default_commission_rate', 'minimum_payout_amount', 'updated_at']
    readonly_fields = ['created_at', 'updated_at']

    def has_add_permission(self, request):
        # Only allow one config instance
        return not CommissionsConfig.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Team)
class TeamAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'leader', 'commission_boost', 'target_monthly', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    raw_id_fields = ['leader']


class VolumeTierInline(admin.TabularInline):
    model = VolumeTier
    extra = 0


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'email', 'tier', 'status', 'commission_rate', 'total_earned', 'team']
    list_filter = ['status', 'tier', 'team']
    search_fields = ['code', 'name', 'email']
    readonly_fields = ['total_earned', 'created_at', 'updated_at']
    inlines = [VolumeTierInline]

    def has_delete_permission(self, request, obj=None):
        # Agents are deactivated, never deleted
        return False


@admin.register(ProductCommissionRate)
class ProductCommissionRateAdmin(admin.ModelAdmin):
    list_display = ['product_id', 'product_name', 'bonus_rate', 'is_active']
    list_filter = ['is_active']
    search_fields = ['product_id', 'product_name']


@admin.register(CategoryCommissionRate)
class CategoryCommissionRateAdmin(admin.ModelAdmin):
    list_display = ['category_id', 'category_name', 'bonus_rate', 'is_active']
    list_filter = ['is_active']
    search_fields = ['category_id', 'category_name']


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ['id', 'agent', 'order_id', 'order_total', 'rate', 'amount', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order_id', 'agent__code', 'agent__name']
    date_hierarchy = 'created_at'
    # Status and payout change only through the service actions below
    readonly_fields = [
        'status', 'payout',
        'order_total', 'based_on_amount', 'rate', 'amount', 'tier_applied', 'breakdown',
        'approved_at', 'paid_at', 'cancelled_at', 'created_at', 'updated_at',
    ]
    actions = ['approve_commissions', 'cancel_commissions']

    @admin.action(description="Approve selected commissions")
    def approve_commissions(self, request, queryset):
        run_service_action(self, request, queryset, CommissionService().approve_commission, "approved")

    @admin.action(description="Cancel selected commissions")
    def cancel_commissions(self, request, queryset):
        run_service_action(self, request, queryset, CommissionService().cancel_commission, "cancelled")


class PayoutItemInline(admin.TabularInline):
    model = PayoutItem
    extra = 0
    can_delete = False
    readonly_fields = ['commission', 'order_id', 'amount']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ['reference', 'agent', 'period', 'amount', 'commission_count', 'status', 'paid_at']
    list_filter = ['status', 'period']
    search_fields = ['reference', 'agent__code', 'agent__name']
    readonly_fields = ['status', 'amount', 'commission_count', 'paid_at', 'failed_at', 'created_at', 'updated_at']
    inlines = [PayoutItemInline]
    actions = ['process_payouts', 'complete_payouts', 'cancel_payouts']

    @admin.action(description="Start processing selected payouts")
    def process_payouts(self, request, queryset):
        run_service_action(self, request, queryset, PayoutService().process_payout, "processing")

    @admin.action(description="Complete selected payouts")
    def complete_payouts(self, request, queryset):
        run_service_action(self, request, queryset, PayoutService().complete_payout, "completed")

    @admin.action(description="Cancel selected payouts")
    def cancel_payouts(self, request, queryset):
        run_service_action(self, request, queryset, PayoutService().cancel_payout, "cancelled")
