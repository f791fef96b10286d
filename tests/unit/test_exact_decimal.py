"""
Exact arithmetic at the ledger boundary.

Quantities and money never pass through float: the input normalizers
refuse floats and excess precision, and ExactDecimal refuses to bind a
float into a column.
"""

from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from carbon_kernel.db.types import (
    MAX_EXACT_AMOUNT,
    ExactDecimal,
    normalize_credit_quantity,
    normalize_money,
    round_credits,
    round_money,
)
from carbon_kernel.exceptions import InvalidQuantityError


class TestNormalizeCreditQuantity:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (Decimal("20"), Decimal("20.0000")),
            (6, Decimal("6.0000")),
            ("0.0001", Decimal("0.0001")),
            ("12.5", Decimal("12.5000")),
        ],
    )
    def test_valid_quantities(self, raw, expected):
        result = normalize_credit_quantity(raw)
        assert result == expected
        assert result.as_tuple().exponent == -4

    @pytest.mark.parametrize("raw", [0, "0", Decimal("-1"), "-0.5"])
    def test_non_positive_rejected(self, raw):
        with pytest.raises(InvalidQuantityError, match="greater than zero"):
            normalize_credit_quantity(raw)

    def test_float_rejected(self):
        with pytest.raises(InvalidQuantityError, match="exact decimal"):
            normalize_credit_quantity(1.5)

    def test_bool_rejected(self):
        with pytest.raises(InvalidQuantityError):
            normalize_credit_quantity(True)

    def test_excess_precision_is_an_error_not_rounded(self):
        with pytest.raises(InvalidQuantityError, match="decimal places"):
            normalize_credit_quantity(Decimal("1.00001"))

    @pytest.mark.parametrize("raw", [Decimal("1e30"), "1e28", MAX_EXACT_AMOUNT + 1])
    def test_beyond_storable_range_rejected(self, raw):
        with pytest.raises(InvalidQuantityError, match="exceeds the maximum"):
            normalize_credit_quantity(raw)

    def test_largest_storable_quantity_accepted(self):
        assert normalize_credit_quantity(Decimal("9223372036.8547")) == Decimal("9223372036.8547")

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", None])
    def test_garbage_rejected(self, raw):
        with pytest.raises(InvalidQuantityError) as exc_info:
            normalize_credit_quantity(raw)
        assert exc_info.value.code == "INVALID_QUANTITY"


class TestMoney:

    def test_round_half_up(self):
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("10.004")) == Decimal("10.00")
        assert round_credits(Decimal("0.00005")) == Decimal("0.0001")

    def test_normalize_money(self):
        assert normalize_money("1000") == Decimal("1000.00")
        with pytest.raises(ValueError):
            normalize_money(Decimal("-1"))
        with pytest.raises(ValueError):
            normalize_money(Decimal("1.001"))
        with pytest.raises(ValueError):
            normalize_money(10.0)

    def test_normalize_money_beyond_storable_range(self):
        with pytest.raises(ValueError, match="exceeds the maximum"):
            normalize_money(Decimal("1e30"), field="opening_cash")


class TestExactDecimalBinding:

    def test_float_refused(self):
        column_type = ExactDecimal()
        with pytest.raises(TypeError, match="float"):
            column_type.process_bind_param(0.1, postgresql.dialect())

    def test_sqlite_stores_nano_units(self):
        column_type = ExactDecimal()
        dialect = sqlite.dialect()
        stored = column_type.process_bind_param(Decimal("12.3456"), dialect)
        assert stored == 12_345_600_000
        assert column_type.process_result_value(stored, dialect) == Decimal("12.3456")

    def test_postgres_passes_decimal_through(self):
        column_type = ExactDecimal()
        dialect = postgresql.dialect()
        assert column_type.process_bind_param(Decimal("0.1"), dialect) == Decimal("0.1")
        assert column_type.process_result_value(Decimal("0.100000000"), dialect) == Decimal("0.1")

    def test_none_round_trips(self):
        column_type = ExactDecimal()
        assert column_type.process_bind_param(None, sqlite.dialect()) is None
        assert column_type.process_result_value(None, sqlite.dialect()) is None
