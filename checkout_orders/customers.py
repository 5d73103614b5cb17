import logging
from typing import Optional, Tuple

import requests

from .errors import ShopifyAPIError
from .logs import log_step
from .models import CheckoutDetails, DeliveryAddress
from .shopify_client import ShopifyClient

logger = logging.getLogger(__name__)


def split_name(full_name: str) -> Tuple[str, str]:
    """Split on the first whitespace run: ("Mary Ann Smith") -> ("Mary", "Ann Smith")."""
    parts = full_name.strip().split(None, 1)
    first = parts[0] if parts else ""
    last = parts[1] if len(parts) > 1 else ""
    return first, last


def customer_note(details: CheckoutDetails) -> str:
    note = f"Delivery order (CST) - {details.delivery_date} at {details.delivery_time}"
    if details.delivery_instructions:
        note += f". Instructions: {details.delivery_instructions}"
    return note


def _find_existing(shopify: ShopifyClient, details: CheckoutDetails) -> Optional[int]:
    if not details.customer_email:
        return None

    try:
        customers = shopify.search_customers(details.customer_email)
    except (ShopifyAPIError, requests.RequestException) as e:
        log_step(
            logger,
            "WARNING: Customer search failed, will create new",
            level=logging.WARNING,
            error=str(e),
        )
        return None

    if not customers:
        return None

    existing = customers[0]
    customer_id = existing["id"]
    log_step(
        logger,
        "Found existing Shopify customer",
        customer_id=customer_id,
        existing_email=existing.get("email"),
    )

    first_name, last_name = split_name(details.customer_name)
    fields = {
        "first_name": first_name or existing.get("first_name"),
        "last_name": last_name or existing.get("last_name"),
        "phone": details.customer_phone or existing.get("phone"),
        "note": customer_note(details),
    }
    try:
        shopify.update_customer(customer_id, fields)
        log_step(logger, "Updated existing customer info", customer_id=customer_id)
    except (ShopifyAPIError, requests.RequestException) as e:
        log_step(
            logger,
            "WARNING: Customer update failed",
            level=logging.WARNING,
            customer_id=customer_id,
            error=str(e),
        )
    return customer_id


def _create(shopify: ShopifyClient, details: CheckoutDetails, address: DeliveryAddress) -> Optional[int]:
    first_name, last_name = split_name(details.customer_name)
    fields = {
        "first_name": first_name,
        "last_name": last_name,
        "email": details.customer_email,
        "phone": details.customer_phone,
        "note": customer_note(details),
        "addresses": [
            {
                "address1": address.street,
                "city": address.city,
                "province": address.state,
                "country": "US",
                "zip": address.zip,
                "phone": details.customer_phone,
                "default": True,
            }
        ],
        "verified_email": False,
        "accepts_marketing": False,
    }
    try:
        customer = shopify.create_customer(fields)
    except (ShopifyAPIError, requests.RequestException, KeyError) as e:
        log_step(logger, "WARNING: Customer creation failed", level=logging.WARNING, error=str(e))
        return None

    log_step(logger, "Created new Shopify customer", customer_id=customer.get("id"))
    return customer.get("id")


def upsert_customer(
    shopify: ShopifyClient,
    details: CheckoutDetails,
    address: DeliveryAddress,
) -> Optional[int]:
    """
    Find the Shopify customer for this email, or create one.

    Returns the customer id, or None when Shopify could not be reached; the
    order is then created without a linked customer.
    """
    log_step(
        logger,
        "Creating/finding Shopify customer",
        name=details.customer_name,
        email=details.customer_email,
    )
    customer_id = _find_existing(shopify, details)
    if customer_id is None:
        customer_id = _create(shopify, details, address)
    return customer_id
