"""
Factory Boy factories for marketplace test data.

Usage:
    from marketplace.tests.factories import BookingFactory, ProviderFactory

    # Starter provider, client pays fees
    provider = ProviderFactory()

    # Booking with the frozen breakdown of a 1000.00 Starter service
    booking = BookingFactory(provider=provider)

    # Booking that is already confirmed
    booking = BookingFactory(status=BookingStatus.CONFIRMED)
"""

from decimal import Decimal

import factory

from marketplace.models import Booking, Client, Provider, Service
from marketplace.states import BookingStatus, FeePayer, GatewayType, SubscriptionTier


class ProviderFactory(factory.django.DjangoModelFactory):
    """
    Factory for Provider instances.

    Default is a Starter escrow provider using the platform default gateway.
    """

    class Meta:
        model = Provider

    business_name = factory.Sequence(lambda n: f"Studio {n}")
    email = factory.Sequence(lambda n: f"provider{n}@example.com")
    subscription_tier = SubscriptionTier.STARTER
    fee_payer = FeePayer.CLIENT
    gateway_type = GatewayType.ESCROW
    payout_account_id = factory.Sequence(lambda n: f"acct_payout_{n}")

    class Params:
        split = factory.Trait(
            gateway_type=GatewayType.SPLIT,
            merchant_account_id=factory.Sequence(lambda n: f"acct_merchant_{n}"),
            merchant_account_verified=True,
        )


class ClientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Client

    name = factory.Sequence(lambda n: f"Client {n}")
    email = factory.Sequence(lambda n: f"client{n}@example.com")


class ServiceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Service

    provider = factory.SubFactory(ProviderFactory)
    name = factory.Sequence(lambda n: f"Session {n}")
    price = Decimal("1000.00")


class BookingFactory(factory.django.DjangoModelFactory):
    """
    Factory for Booking instances with a stored fee breakdown.

    The defaults are the frozen fees of a 1000.00 Starter booking where
    the client pays: zeen 30.00, processing 41.20, total 1071.20.
    """

    class Meta:
        model = Booking

    client = factory.SubFactory(ClientFactory)
    provider = factory.SubFactory(ProviderFactory)
    service = factory.SubFactory(
        ServiceFactory,
        provider=factory.SelfAttribute("..provider"),
    )
    status = BookingStatus.PENDING
    service_price = Decimal("1000.00")
    zeen_fee = Decimal("30.00")
    gateway_fee = Decimal("41.20")
    gateway_fee_rate = Decimal("4.00")
    convenience_fee = Decimal("71.20")
    deposit_amount = Decimal("200.00")
    fee_payer = FeePayer.CLIENT
    total_amount = Decimal("1071.20")
    provider_amount = Decimal("1000.00")
    tier_at_booking = SubscriptionTier.STARTER
