import logging
from decimal import Decimal

from .errors import AmountMismatchError
from .logs import log_step

logger = logging.getLogger(__name__)

# Covers rounding differences between checkout's fee split and Stripe's charge.
DEFAULT_TOLERANCE = Decimal("0.02")


def reconcile_amounts(
    paid_amount: Decimal,
    total_amount: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> Decimal:
    """Check the paid amount against the order total; return the difference."""
    difference = abs(Decimal(paid_amount) - Decimal(total_amount))

    if difference > tolerance:
        log_step(
            logger,
            "ERROR: Amount mismatch",
            level=logging.ERROR,
            payment_amount=paid_amount,
            calculated_total=total_amount,
            difference=difference,
        )
        raise AmountMismatchError(paid_amount, total_amount)

    log_step(
        logger,
        "Amount validation passed",
        payment_amount=paid_amount,
        calculated_total=total_amount,
        difference=difference,
    )
    return difference
