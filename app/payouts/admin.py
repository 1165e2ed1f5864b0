"""
Payout admin configuration.

State changes go through the payout services, never through admin forms:
state fields are read-only and money rows cannot be deleted.
"""

from datetime import timedelta

from django.contrib import admin, messages
from django.utils import timezone

from payouts.currency import format_money
from payouts.models import (
    Balance,
    BalanceTransaction,
    BankAccount,
    Credit,
    MerchantAccount,
    Payee,
    Payment,
    PayoutNote,
    WebhookEvent,
)
from payouts.state_machines import PayoutProcessorType

__all__ = [
    "BalanceAdmin",
    "CreditAdmin",
    "MerchantAccountAdmin",
    "PayeeAdmin",
    "PaymentAdmin",
    "WebhookEventAdmin",
]


class BankAccountInline(admin.TabularInline):
    model = BankAccount
    extra = 0
    fields = ["account_type", "stripe_bank_account_id", "stripe_connect_account_id", "deleted_at"]


class PayoutNoteInline(admin.TabularInline):
    model = PayoutNote
    extra = 0
    readonly_fields = ["content", "created_at"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payee)
class PayeeAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payee.

    "Pay out now" runs the payout pipeline up to yesterday with admin
    privileges, which bypasses the suspension check.
    """

    list_display = [
        "id",
        "name",
        "user",
        "is_suspended",
        "payouts_paused_internally",
        "payouts_paused_by_user",
        "created_at",
    ]
    list_filter = ["is_suspended", "payouts_paused_internally", "payouts_paused_by_user"]
    search_fields = ["id", "name", "legal_name", "user__email", "paypal_payout_email"]
    readonly_fields = ["id", "created_at", "updated_at", "version"]
    inlines = [BankAccountInline, PayoutNoteInline]
    actions = ["pay_out_via_stripe", "pay_out_via_paypal"]

    def _pay_out(self, request, queryset, processor_type: str) -> None:
        from payouts.processors import default_registry
        from payouts.services import PayoutRunService

        cutoff_date = timezone.localdate() - timedelta(days=1)
        payments = PayoutRunService(default_registry()).create_payments_for_balances_up_to_date_for_users(
            cutoff_date,
            processor_type,
            list(queryset),
            from_admin=True,
        )
        self.message_user(
            request,
            f"Created {len(payments)} {processor_type} payments up to {cutoff_date}.",
            messages.SUCCESS if payments else messages.WARNING,
        )

    @admin.action(description="Pay out now via Stripe")
    def pay_out_via_stripe(self, request, queryset):
        self._pay_out(request, queryset, PayoutProcessorType.STRIPE)

    @admin.action(description="Pay out now via PayPal")
    def pay_out_via_paypal(self, request, queryset):
        self._pay_out(request, queryset, PayoutProcessorType.PAYPAL)


@admin.register(MerchantAccount)
class MerchantAccountAdmin(admin.ModelAdmin):
    list_display = ["id", "payee", "processor", "processor_merchant_id", "currency", "holder_of_funds"]
    list_filter = ["processor", "holder_of_funds", "currency"]
    search_fields = ["id", "processor_merchant_id", "payee__name"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Balance)
class BalanceAdmin(admin.ModelAdmin):
    list_display = ["id", "payee", "date", "amount_display", "holding_display", "state"]
    list_filter = ["state", "holding_currency", "date"]
    search_fields = ["id", "payee__name", "payee__user__email"]
    readonly_fields = ["id", "state", "created_at", "updated_at", "version"]
    date_hierarchy = "date"
    ordering = ["-date"]

    def amount_display(self, obj: Balance) -> str:
        return format_money(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"

    def holding_display(self, obj: Balance) -> str:
        return format_money(obj.holding_amount_cents, obj.holding_currency)

    holding_display.short_description = "Holding"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Read-only: payments move through reconciliation, not admin edits.
    """

    list_display = [
        "id",
        "payee",
        "processor",
        "amount_display",
        "state",
        "payout_period_end_date",
        "failure_reason",
        "created_at",
    ]
    list_filter = ["state", "processor", "payout_type", "currency", "created_at"]
    search_fields = [
        "id",
        "payee__name",
        "stripe_transfer_id",
        "stripe_internal_transfer_id",
        "correlation_id",
        "txn_id",
    ]
    readonly_fields = [field.name for field in Payment._meta.fields] + ["balances"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Payment) -> str:
        return format_money(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class BalanceTransactionInline(admin.StackedInline):
    model = BalanceTransaction
    extra = 0
    can_delete = False
    readonly_fields = [
        "balance",
        "issued_amount_currency",
        "issued_amount_gross_cents",
        "issued_amount_net_cents",
        "holding_amount_currency",
        "holding_amount_gross_cents",
        "holding_amount_net_cents",
    ]
    exclude = ["payee", "merchant_account"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Credit)
class CreditAdmin(admin.ModelAdmin):
    """Credits are created by reconciliation only."""

    list_display = ["id", "payee", "amount_cents", "returned_payment", "balance", "created_at"]
    search_fields = ["id", "payee__name", "returned_payment__id"]
    readonly_fields = ["id", "payee", "merchant_account", "amount_cents", "returned_payment", "balance", "created_at"]
    inlines = [BalanceTransactionInline]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Status and error message stay editable so an operator can re-queue a
    failed event; the payload is immutable.
    """

    list_display = ["id", "processor", "event_id", "event_type", "status", "retry_count", "created_at"]
    list_filter = ["processor", "status", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type", "account_id"]
    readonly_fields = [
        "id",
        "processor",
        "event_id",
        "event_type",
        "account_id",
        "payload",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
