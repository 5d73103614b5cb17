from decimal import Decimal

import pytest
from checkout_orders.amounts import reconcile_amounts
from checkout_orders.errors import AmountMismatchError
from checkout_orders.models import OrderAmounts, to_money


def test_exact_match_passes() -> None:
    assert reconcile_amounts(Decimal("94.97"), Decimal("94.97")) == Decimal("0.00")


@pytest.mark.parametrize(
    ("paid", "total"),
    [("94.97", "94.99"), ("94.99", "94.97"), ("10.00", "9.98")],
)
def test_difference_of_two_cents_passes(paid: str, total: str) -> None:
    assert reconcile_amounts(Decimal(paid), Decimal(total)) == Decimal("0.02")


@pytest.mark.parametrize(("paid", "total"), [("94.97", "95.00"), ("95.00", "94.97")])
def test_difference_of_three_cents_fails(paid: str, total: str) -> None:
    with pytest.raises(AmountMismatchError) as exc_info:
        reconcile_amounts(Decimal(paid), Decimal(total))

    message = str(exc_info.value)
    assert paid in message
    assert total in message


def test_custom_tolerance() -> None:
    with pytest.raises(AmountMismatchError):
        reconcile_amounts(Decimal("10.00"), Decimal("10.01"), tolerance=Decimal("0"))


def test_only_the_tip_is_rounded_on_parse() -> None:
    amounts = OrderAmounts(tip_amount=5.123, total_amount="100.005")

    assert amounts.tip_amount == Decimal("5.12")
    assert amounts.total_amount == Decimal("100.005")
    assert amounts.rounded().total_amount == Decimal("100.01")


def test_sub_cent_total_does_not_widen_the_tolerance() -> None:
    amounts = OrderAmounts(total_amount=99.975)

    with pytest.raises(AmountMismatchError):
        reconcile_amounts(Decimal("100.00"), amounts.total_amount)


@pytest.mark.parametrize("raw", [None, "", "abc", "NaN", True])
def test_unparseable_amounts_default_to_zero(raw) -> None:
    assert to_money(raw) == Decimal("0.00")
