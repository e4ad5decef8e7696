from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.core.models import (
    AI_CATEGORIZE,
    SELECT_CATEGORY,
    Category,
    Transaction,
    TransactionDraft,
    format_date,
    parse_transaction,
)
from expense_ledger.errors import ValidationError


def test_parse_transaction_valid():
    tx = parse_transaction("2024/01/15", "  Grocery Shopping ", "Food", "85.43")
    assert tx.date == date(2024, 1, 15)
    assert tx.description == "Grocery Shopping"
    assert tx.category is Category.FOOD
    assert tx.amount == Decimal("85.43")
    assert format_date(tx.date) == "2024/01/15"


def test_transaction_is_immutable():
    tx = Transaction(date(2024, 1, 15), "Rent", Category.HOUSING, Decimal("1200"))
    with pytest.raises(AttributeError):
        tx.amount = Decimal("1")


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"description": "   "}, "description"),
        ({"amount": "0"}, "amount"),
        ({"amount": "-5.00"}, "amount"),
        ({"amount": "abc"}, "amount"),
        ({"amount": "NaN"}, "amount"),
        ({"amount": "Infinity"}, "amount"),
        ({"date_value": "2024-01-15"}, "date"),
        ({"date_value": "2024/02/30"}, "date"),
        ({"category": "Groceries"}, "category"),
        ({"category": SELECT_CATEGORY}, "category"),
        ({"category": AI_CATEGORIZE}, "category"),
    ],
)
def test_parse_transaction_rejects(kwargs, field):
    args = {
        "date_value": "2024/01/15",
        "description": "Lunch",
        "category": "Food",
        "amount": "10",
    }
    args.update(kwargs)
    with pytest.raises(ValidationError) as exc:
        parse_transaction(**args)
    assert exc.value.field == field


def test_category_parse_is_case_insensitive_and_knows_alias():
    assert Category.parse("travel") is Category.TRAVEL
    assert Category.parse("Chinese New Year") is Category.SEASONAL
    assert "Select Category" not in Category.labels()
    assert Category.labels()[-1] == "Other"


def test_draft_from_form_maps_sentinels():
    ai = TransactionDraft.from_form("2024/01/15", "Taxi", AI_CATEGORIZE, "20")
    assert ai.use_ai and ai.category is None

    unset = TransactionDraft.from_form("2024/01/15", "Taxi", SELECT_CATEGORY, "20")
    assert not unset.use_ai and unset.category is None

    chosen = TransactionDraft.from_form("2024/01/15", "Taxi", "Travel", "20")
    assert chosen.category == "Travel"
