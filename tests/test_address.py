import pytest
from checkout_orders.address import (
    MISSING_ADDRESS,
    PARSING_ERROR,
    UNKNOWN,
    normalize_address,
    select_address_source,
)


def test_three_part_address_parses_state_and_zip() -> None:
    address = normalize_address("123 Main St, Austin, TX 78701")

    assert address.street == "123 Main St"
    assert address.city == "Austin"
    assert address.state == "TX"
    assert address.zip == "78701"
    assert address.full_address == "123 Main St, Austin, TX 78701"


def test_state_zip_regex_accepts_lowercase_and_zip_plus_four() -> None:
    address = normalize_address("9 Oak Ln, Round Rock, tx 78664-1234")

    assert address.state == "TX"
    assert address.zip == "78664-1234"


def test_unmatched_state_zip_falls_back_to_whitespace_split() -> None:
    address = normalize_address("1 Rue Cler, Paris, Ile de France")

    assert address.city == "Paris"
    assert address.state == "Ile"
    assert address.zip == "de France"


def test_extra_parts_are_ignored_after_the_third() -> None:
    address = normalize_address("500 Congress Ave, Austin, TX 78701, USA")

    assert (address.street, address.city, address.state, address.zip) == (
        "500 Congress Ave",
        "Austin",
        "TX",
        "78701",
    )


def test_two_part_address_keeps_state_blank() -> None:
    address = normalize_address("123 Main St, Austin TX")

    assert address.street == "123 Main St"
    assert address.city == "Austin TX"
    assert address.state == ""
    assert address.zip == ""


def test_single_part_address_becomes_street() -> None:
    address = normalize_address("Zilker Park north lawn")

    assert address.street == "Zilker Park north lawn"
    assert address.city == ""
    assert address.full_address == "Zilker Park north lawn"


def test_object_address_reads_alternate_keys() -> None:
    address = normalize_address(
        {"line1": "77 Rainey St", "city": "Austin", "province": "TX", "postal_code": "78701"}
    )

    assert address.street == "77 Rainey St"
    assert address.state == "TX"
    assert address.zip == "78701"
    assert address.full_address == "77 Rainey St, Austin, TX 78701"


def test_object_address_without_zip_joins_state_alone() -> None:
    address = normalize_address({"street": "77 Rainey St", "city": "Austin", "state": "TX"})

    assert address.full_address == "77 Rainey St, Austin, TX"


@pytest.mark.parametrize("source", [None, "", "   ", ", ,", " ,  , ", {}, {"unit": ""}])
def test_missing_address_uses_sentinels(source) -> None:
    address = normalize_address(source)

    assert address.street == MISSING_ADDRESS
    assert address.city == UNKNOWN
    assert address.state == UNKNOWN
    assert address.zip == UNKNOWN
    assert all([address.street, address.city, address.state, address.zip])


def test_parsing_exception_uses_error_sentinel() -> None:
    class Exploding(dict):
        def get(self, key, default=None):
            raise RuntimeError("bad address object")

    address = normalize_address(Exploding(street="x"))

    assert address.street == PARSING_ERROR
    assert address.city == UNKNOWN
    assert address.full_address == PARSING_ERROR


def test_select_address_source_prefers_delivery_address() -> None:
    metadata = {"delivery_address": "1 A St, Austin, TX 78701", "shipping_address": "2 B St"}

    assert select_address_source(metadata) == "1 A St, Austin, TX 78701"


def test_select_address_source_skips_blank_values() -> None:
    metadata = {"delivery_address": "  ", "shipping_address": "", "address": "3 C St, Austin"}

    assert select_address_source(metadata) == "3 C St, Austin"


def test_select_address_source_decodes_json_objects() -> None:
    metadata = {"customer_address": '{"street": "4 D St", "city": "Austin"}'}

    assert select_address_source(metadata) == {"street": "4 D St", "city": "Austin"}


def test_select_address_source_returns_none_when_absent() -> None:
    assert select_address_source({"customer_name": "Jamie"}) is None
