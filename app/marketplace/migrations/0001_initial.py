import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Client",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Client display name", max_length=255)),
                ("email", models.EmailField(help_text="Client email for receipts", max_length=254)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Provider",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("business_name", models.CharField(help_text="Public business name", max_length=255)),
                ("email", models.EmailField(blank=True, default="", help_text="Contact email for payout notices", max_length=254)),
                ("subscription_tier", models.CharField(choices=[("starter", "Starter"), ("premium", "Premium"), ("enterprise", "Enterprise")], default="starter", help_text="Current subscription tier", max_length=20)),
                ("fee_payer", models.CharField(blank=True, choices=[("client", "Client"), ("provider", "Provider")], help_text="Who pays platform and processing fees (null = platform default)", max_length=10, null=True)),
                ("founding_fee_waiver", models.BooleanField(default=False, help_text="Founding members pay no platform fee while this is set")),
                ("deposit_percentage", models.DecimalField(blank=True, decimal_places=2, help_text="Preferred deposit percentage (Premium tier; clamped to tier minimum)", max_digits=5, null=True)),
                ("default_deposit_type", models.CharField(blank=True, choices=[("none", "No deposit"), ("percentage", "Percentage of price")], help_text="Deposit type applied to services that use provider defaults", max_length=20, null=True)),
                ("default_deposit_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Deposit percentage applied to services that use provider defaults", max_digits=5, null=True)),
                ("requires_deposit", models.BooleanField(default=True, help_text="Enterprise providers may turn deposits off")),
                ("cancellation_policy", models.TextField(blank=True, default="", help_text="Default cancellation policy text")),
                ("gateway_type", models.CharField(choices=[("escrow", "Escrow"), ("split", "Split")], default="escrow", help_text="Preferred settlement model (split requires a verified merchant account)", max_length=10)),
                ("gateway_provider", models.CharField(blank=True, help_text="Registered gateway key (null = platform default gateway)", max_length=50, null=True)),
                ("merchant_account_id", models.CharField(blank=True, help_text="Provider's merchant account on a split-capable gateway", max_length=255, null=True)),
                ("merchant_account_verified", models.BooleanField(default=False, help_text="Whether the merchant account passed gateway verification")),
                ("payout_account_id", models.CharField(blank=True, help_text="Destination account for escrow payouts", max_length=255, null=True)),
            ],
            options={
                "ordering": ["business_name"],
            },
        ),
        migrations.CreateModel(
            name="Service",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Service name", max_length=255)),
                ("price", models.DecimalField(decimal_places=2, help_text="Listed price", max_digits=12)),
                ("use_provider_defaults", models.BooleanField(default=True, help_text="Inherit deposit and cancellation settings from the provider")),
                ("deposit_type", models.CharField(blank=True, choices=[("none", "No deposit"), ("percentage", "Percentage of price")], help_text="Deposit type override", max_length=20, null=True)),
                ("deposit_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Deposit percentage override", max_digits=5, null=True)),
                ("cancellation_policy", models.TextField(blank=True, help_text="Cancellation policy override", null=True)),
                ("provider", models.ForeignKey(help_text="Provider offering this service", on_delete=django.db.models.deletion.CASCADE, related_name="services", to="marketplace.provider")),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("scheduled_for", models.DateTimeField(blank=True, help_text="Appointment start time", null=True)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("no_show", "No Show")], db_index=True, default="pending", help_text="Current booking status (managed by FSM)", max_length=50, protected=True)),
                ("service_price", models.DecimalField(decimal_places=2, help_text="Service price at booking time", max_digits=12)),
                ("zeen_fee", models.DecimalField(blank=True, decimal_places=2, help_text="Platform fee at booking time", max_digits=12, null=True)),
                ("gateway_fee", models.DecimalField(blank=True, decimal_places=2, help_text="Processing fee at booking time", max_digits=12, null=True)),
                ("gateway_fee_rate", models.DecimalField(blank=True, decimal_places=2, help_text="Processing fee percentage at booking time; deposit and balance fees use it", max_digits=5, null=True)),
                ("convenience_fee", models.DecimalField(decimal_places=2, default=0, help_text="Fees shown to the client when the client pays them", max_digits=12)),
                ("deposit_amount", models.DecimalField(decimal_places=2, default=0, help_text="Deposit due at booking time", max_digits=12)),
                ("fee_payer", models.CharField(blank=True, choices=[("client", "Client"), ("provider", "Provider")], help_text="Fee payer at booking time", max_length=10, null=True)),
                ("total_amount", models.DecimalField(decimal_places=2, help_text="Total the client pays", max_digits=12)),
                ("provider_amount", models.DecimalField(decimal_places=2, help_text="Amount the provider receives", max_digits=12)),
                ("tier_at_booking", models.CharField(blank=True, choices=[("starter", "Starter"), ("premium", "Premium"), ("enterprise", "Enterprise")], help_text="Provider tier when the fees were frozen", max_length=20, null=True)),
                ("cancellation_reason", models.TextField(blank=True, help_text="Why the booking was cancelled", null=True)),
                ("cancelled_by", models.CharField(blank=True, choices=[("client", "Client"), ("provider", "Provider"), ("system", "System")], help_text="Who cancelled the booking", max_length=10, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("client", models.ForeignKey(help_text="Client who made the booking", on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="marketplace.client")),
                ("provider", models.ForeignKey(help_text="Provider delivering the service", on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="marketplace.provider")),
                ("service", models.ForeignKey(help_text="Booked service", on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="marketplace.service")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["provider", "status"], name="booking_provider_status_idx")],
            },
        ),
    ]
