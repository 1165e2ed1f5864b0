import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payee",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Version for optimistic locking - incremented on each save"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(blank=True, default="", help_text="Display name", max_length=255)),
                (
                    "legal_name",
                    models.CharField(blank=True, default="", help_text="Legal name on record", max_length=255),
                ),
                (
                    "paypal_payout_email",
                    models.CharField(
                        blank=True, default="", help_text="PayPal address payouts are sent to", max_length=255
                    ),
                ),
                (
                    "is_suspended",
                    models.BooleanField(default=False, help_text="Suspended payees are only paid by admins"),
                ),
                (
                    "payouts_paused_internally",
                    models.BooleanField(default=False, help_text="Payouts paused by an operator"),
                ),
                (
                    "payouts_paused_by_user",
                    models.BooleanField(default=False, help_text="Payouts paused by the payee"),
                ),
                (
                    "payout_threshold_cents",
                    models.PositiveIntegerField(
                        default=0, help_text="Payee-chosen minimum payout amount (USD cents)"
                    ),
                ),
                (
                    "charge_paypal_payout_fee",
                    models.BooleanField(default=False, help_text="Deduct the PayPal payout fee from PayPal payouts"),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="User this payee belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payee",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payee",
                "verbose_name_plural": "Payees",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="MerchantAccount",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Timestamp when this record was soft deleted",
                        null=True,
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "processor",
                    models.CharField(
                        choices=[("paypal", "PayPal"), ("stripe", "Stripe")],
                        db_index=True,
                        help_text="Processor this account lives on",
                        max_length=20,
                    ),
                ),
                (
                    "processor_merchant_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Processor account ID (e.g., acct_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd", help_text="Settlement currency (ISO 4217, lowercase)", max_length=3
                    ),
                ),
                (
                    "holder_of_funds",
                    models.CharField(
                        choices=[("platform", "Platform"), ("stripe", "Stripe"), ("paypal", "PayPal")],
                        default="platform",
                        help_text="Legal holder of funds on this account",
                        max_length=20,
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        blank=True,
                        help_text="Owning payee. Null for the platform's own account.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="merchant_accounts",
                        to="payouts.payee",
                    ),
                ),
            ],
            options={
                "verbose_name": "Merchant Account",
                "verbose_name_plural": "Merchant Accounts",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["payee", "processor"], name="payouts_mer_payee_i_5d1c2e_idx")],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Timestamp when this record was soft deleted",
                        null=True,
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "account_type",
                    models.CharField(
                        choices=[("bank_account", "Bank Account"), ("debit_card", "Debit Card")],
                        default="bank_account",
                        help_text="Bank account or debit card",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_bank_account_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe external account ID (ba_xxx / card_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "stripe_connect_account_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe connected account holding this external account",
                        max_length=255,
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        help_text="Payee owning this account",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bank_accounts",
                        to="payouts.payee",
                    ),
                ),
            ],
            options={
                "verbose_name": "Bank Account",
                "verbose_name_plural": "Bank Accounts",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PayoutNote",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("content", models.TextField()),
                (
                    "payee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_notes",
                        to="payouts.payee",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Balance",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Version for optimistic locking - incremented on each save"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("date", models.DateField(db_index=True, help_text="Settlement date")),
                (
                    "currency",
                    models.CharField(
                        default="usd", help_text="Issued currency (ISO 4217, lowercase)", max_length=3
                    ),
                ),
                (
                    "amount_cents",
                    models.BigIntegerField(default=0, help_text="Signed issued amount in minor units"),
                ),
                (
                    "holding_currency",
                    models.CharField(default="usd", help_text="Currency the funds are held in", max_length=3),
                ),
                (
                    "holding_amount_cents",
                    models.BigIntegerField(
                        default=0, help_text="Signed held amount in minor units of holding_currency"
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[("unpaid", "Unpaid"), ("processing", "Processing"), ("paid", "Paid")],
                        db_index=True,
                        default="unpaid",
                        help_text="Current state of the balance (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "merchant_account",
                    models.ForeignKey(
                        help_text="Merchant account holding these funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balances",
                        to="payouts.merchantaccount",
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        help_text="Payee owed these funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balances",
                        to="payouts.payee",
                    ),
                ),
            ],
            options={
                "verbose_name": "Balance",
                "verbose_name_plural": "Balances",
                "ordering": ["date", "created_at"],
                "indexes": [
                    models.Index(fields=["payee", "state", "date"], name="payouts_bal_payee_i_8b7f0a_idx"),
                    models.Index(fields=["merchant_account", "state"], name="payouts_bal_merchan_4c2d91_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Version for optimistic locking - incremented on each save"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "processor",
                    models.CharField(
                        choices=[("paypal", "PayPal"), ("stripe", "Stripe")],
                        db_index=True,
                        help_text="Processor moving the money",
                        max_length=20,
                    ),
                ),
                (
                    "amount_cents",
                    models.BigIntegerField(default=0, help_text="Amount in minor units of the payout currency"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="Payout currency (ISO 4217, lowercase)", max_length=3),
                ),
                (
                    "payout_period_end_date",
                    models.DateField(db_index=True, help_text="Cutoff date balances were aggregated up to"),
                ),
                (
                    "payout_type",
                    models.CharField(
                        choices=[("standard", "Standard"), ("instant", "Instant")],
                        default="standard",
                        help_text="Standard or instant payout",
                        max_length=20,
                    ),
                ),
                (
                    "processor_fee_cents",
                    models.BigIntegerField(default=0, help_text="Fee charged by the processor"),
                ),
                (
                    "platform_fee_cents",
                    models.BigIntegerField(default=0, help_text="Fee deducted by the platform (PayPal payout fee)"),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("creating", "Creating"),
                            ("processing", "Processing"),
                            ("unclaimed", "Unclaimed"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("returned", "Returned"),
                        ],
                        db_index=True,
                        default="creating",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="PaymentFailureReason or processor failure code",
                        max_length=255,
                    ),
                ),
                (
                    "arrival_date",
                    models.DateField(
                        blank=True,
                        help_text="Expected or actual arrival date reported by the processor",
                        null=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payment_address",
                    models.CharField(
                        blank=True, default="", help_text="PayPal address the payment is sent to", max_length=255
                    ),
                ),
                (
                    "correlation_id",
                    models.CharField(
                        blank=True, default="", help_text="PayPal MassPay correlation ID", max_length=255
                    ),
                ),
                (
                    "txn_id",
                    models.CharField(blank=True, default="", help_text="PayPal MassPay transaction ID", max_length=255),
                ),
                (
                    "stripe_connect_account_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Connected account the payout is made from",
                        max_length=255,
                    ),
                ),
                (
                    "stripe_transfer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Payout ID (po_xxx) of the external transfer",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "stripe_internal_transfer_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Transfer ID (tr_xxx) of the internal leg",
                        max_length=255,
                    ),
                ),
                (
                    "internal_transfer_amount_cents",
                    models.BigIntegerField(default=0, help_text="USD amount routed through the internal leg"),
                ),
                (
                    "stripe_internal_transfer_reversal_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Transfer Reversal ID (trr_xxx) of the internal leg",
                        max_length=255,
                    ),
                ),
                (
                    "processor_reversing_payout_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe payout that reversed this payment",
                        max_length=255,
                    ),
                ),
                (
                    "bank_account",
                    models.ForeignKey(
                        blank=True,
                        help_text="Stripe payout destination",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="payouts.bankaccount",
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        help_text="Payee being paid",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="payouts.payee",
                    ),
                ),
                (
                    "balances",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Balances aggregated into this payment",
                        related_name="payments",
                        to="payouts.balance",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payee", "state"], name="payouts_pay_payee_i_1f6a3b_idx"),
                    models.Index(fields=["processor", "state"], name="payouts_pay_process_9e2c47_idx"),
                    models.Index(
                        fields=["payee", "payout_period_end_date"], name="payouts_pay_payee_i_73d0e5_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gte=0),
                        name="payment_amount_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Credit",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_cents",
                    models.BigIntegerField(default=0, help_text="Signed issued amount in USD cents"),
                ),
                (
                    "balance",
                    models.ForeignKey(
                        blank=True,
                        help_text="Balance this credit was applied to",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credits",
                        to="payouts.balance",
                    ),
                ),
                (
                    "merchant_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credits",
                        to="payouts.merchantaccount",
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credits",
                        to="payouts.payee",
                    ),
                ),
                (
                    "returned_payment",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payment whose internal transfer was reversed",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credits",
                        to="payouts.payment",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="BalanceTransaction",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("issued_amount_currency", models.CharField(default="usd", max_length=3)),
                ("issued_amount_gross_cents", models.BigIntegerField(default=0)),
                ("issued_amount_net_cents", models.BigIntegerField(default=0)),
                ("holding_amount_currency", models.CharField(default="usd", max_length=3)),
                ("holding_amount_gross_cents", models.BigIntegerField(default=0)),
                ("holding_amount_net_cents", models.BigIntegerField(default=0)),
                (
                    "balance",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_transactions",
                        to="payouts.balance",
                    ),
                ),
                (
                    "credit",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_transaction",
                        to="payouts.credit",
                    ),
                ),
                (
                    "merchant_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_transactions",
                        to="payouts.merchantaccount",
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_transactions",
                        to="payouts.payee",
                    ),
                ),
            ],
            options={
                "verbose_name": "Balance Transaction",
                "verbose_name_plural": "Balance Transactions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "processor",
                    models.CharField(
                        choices=[("paypal", "PayPal"), ("stripe", "Stripe")],
                        default="stripe",
                        help_text="Processor that sent the event",
                        max_length=20,
                    ),
                ),
                (
                    "event_id",
                    models.CharField(
                        db_index=True,
                        help_text="Processor event ID - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Event type (e.g., 'payout.paid', 'masspay')",
                        max_length=100,
                    ),
                ),
                (
                    "account_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Connected account ID the event was sent for",
                        max_length=255,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts"),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payouts_web_status_2a8e6f_idx"),
                    models.Index(fields=["status", "retry_count"], name="payouts_web_status_b41d07_idx"),
                ],
            },
        ),
    ]
