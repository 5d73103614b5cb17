"""
Delivery address normalization.

Checkout sends the delivery address as free text ("123 Main St, Austin, TX 78701")
or, occasionally, as a structured object. Whatever arrives is turned into
discrete street/city/state/zip fields. Missing or unparseable input never
raises; it is replaced by sentinel values that stay visible on the Shopify
order so operations staff notice the problem.
"""
import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Union

from .logs import log_step
from .models import DeliveryAddress

logger = logging.getLogger(__name__)

ADDRESS_KEYS = ("delivery_address", "shipping_address", "address", "customer_address")

MISSING_ADDRESS = "DELIVERY ADDRESS MISSING - CHECK CHECKOUT FLOW"
PARSING_ERROR = "ADDRESS PARSING ERROR"
UNKNOWN = "UNKNOWN"

# US only: two-letter state code, 5 or 5+4 digit ZIP.
STATE_ZIP_RE = re.compile(r"^([A-Z]{2})\s*(\d{5}(?:-\d{4})?)$", re.IGNORECASE)

STREET_KEYS = ("street", "address", "line1", "address1")
STATE_KEYS = ("state", "province")
ZIP_KEYS = ("zip", "zipCode", "postal_code")

AddressSource = Union[str, Dict[str, Any]]


def _decode(value: Any) -> Optional[AddressSource]:
    if isinstance(value, Mapping):
        return dict(value) or None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.startswith("{"):
        try:
            decoded = json.loads(text)
        except ValueError:
            return value
        if isinstance(decoded, dict):
            return decoded or None
    return value


def select_address_source(mapping: Mapping[str, Any]) -> Optional[AddressSource]:
    """Return the first non-blank address candidate, in priority order."""
    for key in ADDRESS_KEYS:
        source = _decode(mapping.get(key))
        if source is not None:
            return source
    return None


def _sentinel(street: str) -> DeliveryAddress:
    return DeliveryAddress(
        street=street,
        city=UNKNOWN,
        state=UNKNOWN,
        zip=UNKNOWN,
        full_address=street,
    )


def _first(obj: Mapping[str, Any], keys) -> str:
    for key in keys:
        value = obj.get(key)
        if value:
            return str(value).strip()
    return ""


def _parse_string(source: str) -> DeliveryAddress:
    parts = [part.strip() for part in source.split(",")]
    street = city = state = zip_code = ""

    if len(parts) >= 3:
        street, city = parts[0], parts[1]
        match = STATE_ZIP_RE.match(parts[2])
        if match:
            state = match.group(1).upper()
            zip_code = match.group(2)
        else:
            pieces = parts[2].split(" ")
            state = pieces[0]
            zip_code = " ".join(pieces[1:])
    elif len(parts) == 2:
        street, city = parts
    else:
        street = source

    return DeliveryAddress(street=street, city=city, state=state, zip=zip_code, full_address=source)


def _parse_object(source: Mapping[str, Any]) -> DeliveryAddress:
    street = _first(source, STREET_KEYS)
    city = _first(source, ("city",))
    state = _first(source, STATE_KEYS)
    zip_code = _first(source, ZIP_KEYS)

    state_zip = f"{state} {zip_code}" if state and zip_code else state or zip_code
    full_address = ", ".join(part for part in (street, city, state_zip) if part)
    return DeliveryAddress(street=street, city=city, state=state, zip=zip_code, full_address=full_address)


def normalize_address(source: Optional[AddressSource]) -> DeliveryAddress:
    """
    Parse an address source into a DeliveryAddress.

    Args:
        source: Free-text address, an address object, or None

    Returns:
        A populated DeliveryAddress; sentinel values mark missing or broken input
    """
    try:
        if isinstance(source, str) and source.replace(",", "").strip():
            address = _parse_string(source.strip())
        elif isinstance(source, Mapping) and source:
            address = _parse_object(source)
            if not address.full_address:
                log_step(
                    logger,
                    "CRITICAL: Delivery address object has no usable fields",
                    level=logging.ERROR,
                    keys=sorted(source),
                )
                return _sentinel(MISSING_ADDRESS)
        else:
            log_step(
                logger,
                "CRITICAL: No delivery address found in metadata",
                level=logging.ERROR,
                attempted_sources=list(ADDRESS_KEYS),
            )
            return _sentinel(MISSING_ADDRESS)
    except Exception as e:
        log_step(
            logger,
            "WARNING: Address parsing error",
            level=logging.WARNING,
            error=str(e),
            raw_address=source,
        )
        return _sentinel(PARSING_ERROR)

    log_step(
        logger,
        "Address parsing completed",
        street=address.street,
        city=address.city,
        state=address.state,
        zip=address.zip,
        full_address=address.display(),
    )
    return address
