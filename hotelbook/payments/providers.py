"""Payment provider catalog — known providers, references and checkout links."""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import urlencode

from hotelbook.config import settings
from hotelbook.models.enums import PaymentProvider


@dataclass(frozen=True)
class ProviderInfo:
    """Static description of a supported payment provider."""

    name: str
    display_name: str
    currency: str
    reference_prefix: str


PROVIDERS: dict[str, ProviderInfo] = {
    PaymentProvider.TELEBIRR: ProviderInfo(
        name=PaymentProvider.TELEBIRR,
        display_name="telebirr",
        currency="ETB",
        reference_prefix="TELEBIRR",
    ),
    PaymentProvider.CHAPPA: ProviderInfo(
        name=PaymentProvider.CHAPPA,
        display_name="Chapa",
        currency="ETB",
        reference_prefix="CHAPPA",
    ),
    PaymentProvider.EBIRR: ProviderInfo(
        name=PaymentProvider.EBIRR,
        display_name="E-Birr",
        currency="ETB",
        reference_prefix="EBIRR",
    ),
    PaymentProvider.KAAFI: ProviderInfo(
        name=PaymentProvider.KAAFI,
        display_name="Kaafi",
        currency="ETB",
        reference_prefix="KAAFI",
    ),
}

VALID_PROVIDER_NAMES: set[str] = set(PROVIDERS.keys())


def get_provider(name: str) -> ProviderInfo | None:
    """Look up a provider by its wire name. Returns None if unknown."""
    return PROVIDERS.get(name)


def generate_provider_reference(provider: str) -> str:
    """Return a fresh, globally unique reference such as ``CHAPPA_4f1c…``.

    128 random bits from uuid4 keep collisions out of reach without a
    counter or a database round-trip.
    """
    info = PROVIDERS[provider]
    return f"{info.reference_prefix}_{uuid.uuid4().hex.upper()}"


def build_payment_url(provider: str, reference: str, amount: Decimal) -> str:
    """Mock hosted-checkout URL the client is redirected to."""
    base = settings.mock_payment_base_url.format(provider=provider)
    return f"{base}?{urlencode({'ref': reference, 'amount': f'{amount:.2f}'})}"
