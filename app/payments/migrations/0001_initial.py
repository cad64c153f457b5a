import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount sent to the gateway", max_digits=12)),
                ("platform_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Zeen platform fee included in this payment", max_digits=12)),
                ("processing_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Gateway processing fee for this payment", max_digits=12)),
                ("processing_fee_payer", models.CharField(choices=[("client", "Client"), ("provider", "Provider")], default="client", help_text="Who bears the fees on this payment", max_length=20)),
                ("provider_amount", models.DecimalField(decimal_places=2, help_text="Provider's share of this payment", max_digits=12)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Total refunded so far", max_digits=12)),
                ("refund_in_flight", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Refund amount claimed but not yet confirmed by the gateway", max_digits=12)),
                ("refund_attempts", models.PositiveIntegerField(default=0, help_text="Refund requests claimed so far; part of the gateway idempotency key")),
                ("currency", models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3)),
                ("payment_type", models.CharField(choices=[("full", "Full Payment"), ("deposit", "Deposit"), ("balance", "Balance")], default="full", help_text="Full payment, deposit or remaining balance", max_length=20)),
                ("gateway", models.CharField(help_text="Registry name of the gateway that handled this payment", max_length=50)),
                ("gateway_type", models.CharField(choices=[("escrow", "Escrow"), ("split", "Split")], default="escrow", help_text="Split (paid at charge time) or escrow (paid out later)", max_length=20)),
                ("transaction_id", models.CharField(blank=True, help_text="Gateway transaction id; completion dedupes on it", max_length=255, null=True, unique=True)),
                ("order_id", models.CharField(blank=True, default="", help_text="Gateway order or checkout session id", max_length=255)),
                ("response_code", models.CharField(blank=True, default="", help_text="Last gateway response code", max_length=50)),
                ("card_brand", models.CharField(blank=True, default="", help_text="Card brand reported by the gateway", max_length=30)),
                ("card_last_four", models.CharField(blank=True, default="", help_text="Last four digits of the card", max_length=4)),
                ("split_details", models.JSONField(blank=True, help_text="Split configuration sent to split gateways", null=True)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed"), ("partially_refunded", "Partially Refunded"), ("refunded", "Refunded")], db_index=True, default="pending", help_text="Current payment status (managed by FSM)", max_length=50, protected=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Gateway reason if the payment failed")),
                ("processing_started_at", models.DateTimeField(blank=True, help_text="When the payment was handed to the gateway", null=True)),
                ("completed_at", models.DateTimeField(blank=True, help_text="When the gateway confirmed the payment", null=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payment failed", null=True)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the last refund was recorded", null=True)),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Flexible key-value metadata storage")),
                ("booking", models.ForeignKey(help_text="Booking this payment is for", on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="marketplace.booking")),
                ("provider", models.ForeignKey(help_text="Provider receiving the payment", on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="marketplace.provider")),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
                    models.Index(fields=["provider", "status"], name="payment_provider_status_idx"),
                    models.Index(fields=["status", "processing_started_at"], name="payment_status_started_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_amount_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("refunded_amount__gte", 0), ("refunded_amount__lte", models.F("amount"))),
                        name="payment_refund_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScheduledPayout",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount fixed at scheduling time", max_digits=12)),
                ("currency", models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3)),
                ("scheduled_for", models.DateTimeField(db_index=True, help_text="Earliest time the payout may be processed")),
                ("payout_method", models.CharField(default="bank_transfer", help_text="How the money is sent", max_length=30)),
                ("batch_id", models.CharField(blank=True, db_index=True, help_text="Batch this payout belongs to (BATCH-YYYYMMDD-XXXXXX)", max_length=50, null=True)),
                ("reference_number", models.CharField(blank=True, help_text="Reference assigned on completion", max_length=50, null=True, unique=True)),
                ("gateway_reference", models.CharField(blank=True, default="", help_text="Disbursement id returned by the gateway", max_length=255)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed"), ("cancelled", "Cancelled")], db_index=True, default="pending", help_text="Current payout status (managed by FSM)", max_length=50, protected=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of failed disbursement attempts")),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Reason for the last failure or cancellation")),
                ("failure_kind", models.CharField(blank=True, choices=[("retryable", "Retryable"), ("terminal", "Terminal")], help_text="Retryable (timeout, 5xx) or terminal (4xx, bad details)", max_length=20, null=True)),
                ("next_retry_at", models.DateTimeField(blank=True, help_text="When a retryable failure may be attempted again", null=True)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When the payout completed", null=True)),
                ("notes", models.TextField(blank=True, default="", help_text="Operator notes")),
                ("provider", models.ForeignKey(help_text="Provider receiving the payout", on_delete=django.db.models.deletion.PROTECT, related_name="scheduled_payouts", to="marketplace.provider")),
            ],
            options={
                "verbose_name": "Scheduled Payout",
                "verbose_name_plural": "Scheduled Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "scheduled_for"], name="payout_status_sched_idx"),
                    models.Index(fields=["status", "next_retry_at"], name="payout_status_retry_idx"),
                    models.Index(fields=["provider", "status"], name="payout_provider_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="scheduled_payout_amount_positive"),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "processing"])),
                        fields=("provider",),
                        name="one_active_payout_per_provider",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SystemSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("key", models.CharField(help_text="Setting key", max_length=100, unique=True)),
                ("value", models.TextField(blank=True, default="", help_text="Raw value, cast according to type")),
                ("type", models.CharField(choices=[("string", "String"), ("integer", "Integer"), ("float", "Float"), ("boolean", "Boolean"), ("json", "JSON")], default="string", help_text="Value type used when casting", max_length=10)),
                ("group", models.CharField(db_index=True, default="general", help_text="Settings group (fees, payouts, ...)", max_length=50)),
                ("description", models.TextField(blank=True, default="", help_text="What the setting controls")),
            ],
            options={
                "verbose_name": "System Setting",
                "verbose_name_plural": "System Settings",
                "ordering": ["group", "key"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("gateway", models.CharField(db_index=True, help_text="Registry name of the sending gateway", max_length=50)),
                ("event_id", models.CharField(help_text="Gateway event id - unique per gateway for idempotency", max_length=255)),
                ("event_type", models.CharField(blank=True, db_index=True, default="", help_text="Gateway event type", max_length=100)),
                ("payload", models.JSONField(default=dict, help_text="Redacted webhook payload")),
                ("signature_valid", models.BooleanField(default=False, help_text="Whether the signature verified")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processed", "Processed"), ("ignored", "Ignored"), ("failed", "Failed")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("error_message", models.TextField(blank=True, default="", help_text="Error message if processing failed or was skipped")),
                ("processed_at", models.DateTimeField(blank=True, help_text="When processing finished", null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="webhook_status_created_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("gateway", "event_id"), name="unique_webhook_event_per_gateway"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Public identifier of this entry", unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this entry was recorded")),
                ("type", models.CharField(choices=[("credit", "Credit"), ("debit", "Debit"), ("hold", "Hold"), ("release", "Release")], help_text="Entry type", max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount (always positive)", max_digits=12)),
                ("balance_after", models.DecimalField(decimal_places=2, help_text="Available balance after this entry", max_digits=14)),
                ("currency", models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3)),
                ("description", models.TextField(blank=True, default="", help_text="Human-readable description of this entry")),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Arbitrary JSON data for extensibility")),
                ("idempotency_key", models.CharField(blank=True, help_text="Unique key to prevent duplicate entries", max_length=255, null=True, unique=True)),
                ("booking", models.ForeignKey(blank=True, help_text="Booking this entry relates to", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="marketplace.booking")),
                ("payment", models.ForeignKey(blank=True, help_text="Payment this entry relates to", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="payments.payment")),
                ("payout", models.ForeignKey(blank=True, help_text="Payout this entry relates to", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="payments.scheduledpayout")),
                ("provider", models.ForeignKey(help_text="Provider whose balance this entry moves", on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="marketplace.provider")),
                ("released_hold", models.OneToOneField(blank=True, help_text="HOLD entry released by this RELEASE entry", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="release_entry", to="payments.ledgerentry")),
            ],
            options={
                "verbose_name": "Ledger Entry",
                "verbose_name_plural": "Ledger Entries",
                "ordering": ["-id"],
                "indexes": [
                    models.Index(fields=["provider", "type"], name="ledger_provider_type_idx"),
                    models.Index(fields=["provider", "created_at"], name="ledger_provider_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="ledger_entry_amount_positive"),
                ],
            },
        ),
    ]
