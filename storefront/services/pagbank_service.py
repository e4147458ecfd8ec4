"""PagBank service — hosted checkout creation against the PagBank API.

Only the single call the storefront needs (POST /checkouts). Amounts are
sent in centavos. The buyer pays on PagBank's hosted page (the "PAY"
link) and PagBank notifies /pagbank/webhooks on status changes.
"""

import logging
from datetime import datetime, timedelta, timezone

import requests
from flask import current_app

from storefront.services.checkout_service import PaymentProviderError, to_minor_units

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ["PIX", "BOLETO", "CREDIT_CARD", "DEBIT_CARD"]
MAX_INSTALLMENTS = "12"


def _auth_header(token):
    """PagBank tokens are sometimes stored with the Bearer prefix already."""
    return token if token.startswith("Bearer ") else f"Bearer {token}"


def build_checkout_payload(reference_id, items, customer_email=None,
                           customer_name=None):
    """Build the POST /checkouts body for a validated cart."""
    app_base_url = current_app.config["APP_BASE_URL"].rstrip("/")
    webhook_base_url = current_app.config["WEBHOOK_BASE_URL"].rstrip("/")
    expires_at = datetime.now(timezone.utc) + timedelta(
        hours=current_app.config["CHECKOUT_EXPIRATION_HOURS"]
    )

    payload = {
        "reference_id": reference_id,
        "items": [
            {
                "reference_id": f"item_{index}",
                "name": item["name"][:64],
                "quantity": item["quantity"],
                "unit_amount": to_minor_units(item["price"]),
            }
            for index, item in enumerate(items, start=1)
        ],
        "payment_methods": [{"type": method} for method in PAYMENT_METHODS],
        "payment_methods_configs": [
            {
                "type": "CREDIT_CARD",
                "config_options": [
                    {"option": "INSTALLMENTS_LIMIT", "value": MAX_INSTALLMENTS},
                ],
            },
        ],
        "redirect_urls": {
            "return_url": f"{app_base_url}/payment-success?reference_id={reference_id}",
        },
        "notification_urls": [f"{webhook_base_url}/pagbank/webhooks"],
        "payment_notification_urls": [f"{webhook_base_url}/pagbank/webhooks"],
        "expiration_date": expires_at.isoformat(timespec="seconds"),
    }

    if customer_email:
        payload["customer"] = {
            "email": customer_email,
            "name": customer_name or "Cliente",
        }

    return payload


def create_checkout(reference_id, items, customer_email=None, customer_name=None):
    """Create a PagBank hosted checkout.

    Returns (pay_url, checkout_id).
    Raises PaymentProviderError on missing config, network failure,
    non-2xx responses, or a response without a PAY link.
    """
    token = current_app.config.get("PAGBANK_TOKEN")
    if not token:
        raise PaymentProviderError("PAGBANK_TOKEN is not set")

    api_url = f"{current_app.config['PAGBANK_API_URL'].rstrip('/')}/checkouts"
    payload = build_checkout_payload(
        reference_id, items, customer_email, customer_name
    )

    logger.info(f"Creating PagBank checkout {reference_id} ({len(items)} items)")
    try:
        resp = requests.post(
            api_url,
            json=payload,
            headers={
                "Authorization": _auth_header(token),
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=current_app.config["PAGBANK_TIMEOUT_SECONDS"],
        )
    except requests.RequestException as e:
        raise PaymentProviderError(f"PagBank unreachable: {e}") from e

    if not resp.ok:
        raise PaymentProviderError(
            f"PagBank API error: {resp.status_code} - {resp.text[:1000]}"
        )

    try:
        checkout = resp.json()
    except ValueError as e:
        raise PaymentProviderError("PagBank returned a non-JSON body") from e

    pay_link = next(
        (link for link in checkout.get("links") or [] if link.get("rel") == "PAY"),
        None,
    )
    if not pay_link or not pay_link.get("href"):
        raise PaymentProviderError("Payment link not found in PagBank response")

    logger.info(f"PagBank checkout {checkout.get('id')} created for {reference_id}")
    return pay_link["href"], checkout.get("id")
