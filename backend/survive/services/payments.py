"""Payment collaborator for the one-time boost.

The game core never talks to Stripe directly. Routes ask a provider for a
checkout URL; the boost itself is granted when the payment webhook confirms
the session (or, when ``BOOST_REQUIRES_PAYMENT`` is off, straight from the
client action).
"""

import json
import uuid
from dataclasses import dataclass
from typing import Optional

import stripe


BOOST_PRODUCT_NAME = 'Survive.com Health Boost'
BOOST_PRODUCT_DESCRIPTION = 'Buy 5 points for 99 cents (one per game)'


@dataclass
class CheckoutResult:
    session_id: str
    url: str


class StripeCheckoutProvider:
    def __init__(self, api_key: str, unit_amount: int = 99, currency: str = 'usd'):
        self._api_key = api_key
        self._unit_amount = unit_amount
        self._currency = currency

    def create_checkout_session(self, price_ref: Optional[str], success_url: str, cancel_url: str,
                                metadata: Optional[dict] = None) -> CheckoutResult:
        if price_ref:
            line_item = {'price': price_ref, 'quantity': 1}
        else:
            line_item = {
                'price_data': {
                    'currency': self._currency,
                    'product_data': {
                        'name': BOOST_PRODUCT_NAME,
                        'description': BOOST_PRODUCT_DESCRIPTION,
                    },
                    'unit_amount': self._unit_amount,
                },
                'quantity': 1,
            }
        session = stripe.checkout.Session.create(
            api_key=self._api_key,
            payment_method_types=['card'],
            line_items=[line_item],
            mode='payment',
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata or {},
        )
        return CheckoutResult(session_id=session.id, url=session.url)


class SimulatedCheckoutProvider:
    """Used when no Stripe key is configured; confirm through the webhook route."""

    def create_checkout_session(self, price_ref: Optional[str], success_url: str, cancel_url: str,
                                metadata: Optional[dict] = None) -> CheckoutResult:
        session_id = f"sim_{uuid.uuid4().hex}"
        sep = '&' if '?' in success_url else '?'
        return CheckoutResult(session_id=session_id, url=f"{success_url}{sep}session_id={session_id}")


def checkout_provider_from_config(config):
    api_key = config.get('STRIPE_SECRET_KEY')
    if api_key:
        return StripeCheckoutProvider(api_key, unit_amount=int(config.get('BOOST_PRICE_CENTS', 99)))
    return SimulatedCheckoutProvider()


def parse_webhook_event(payload: bytes, signature: Optional[str], secret: Optional[str]) -> dict:
    """Verify and decode a webhook body.

    Raises ``ValueError`` for malformed payloads and
    ``stripe.SignatureVerificationError`` for bad signatures. Without a
    secret (local development) the body is trusted as-is.
    """
    if secret:
        stripe.Webhook.construct_event(payload, signature or '', secret)
    data = json.loads(payload or b'{}')
    if not isinstance(data, dict):
        raise ValueError('webhook payload must be a JSON object')
    return data
