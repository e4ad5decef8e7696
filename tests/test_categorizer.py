import anyio
import pytest

from expense_ledger.ai import CategorizationClient
from expense_ledger.core.categorizer import Categorizer, rules_from_config, suggest
from expense_ledger.core.models import Category, TransactionDraft
from expense_ledger.errors import CategoryRequiredError, ConfigError
from tests.conftest import DummyProvider


@pytest.mark.parametrize(
    "description, expected",
    [
        ("Monthly RENT payment", Category.HOUSING),
        ("Mortgage", Category.HOUSING),
        ("Grocery Shopping", Category.FOOD),
        ("fast food", Category.FOOD),
        ("Restaurant A", Category.FOOD),
        ("Uber trip", Category.TRANSPORTATION),
        ("Netflix", Category.ENTERTAINMENT),
        ("Hongbao for nephew", Category.SEASONAL),
        ("Happy New Year dinner party", Category.SEASONAL),
        ("Bookstore", None),
        ("", None),
    ],
)
def test_suggest(description, expected):
    assert suggest(description) is expected


def test_suggest_first_rule_wins():
    # Food is listed before Seasonal.
    assert suggest("food gift basket") is Category.FOOD
    # Transportation ("gas") is listed before Housing ("rent").
    assert suggest("gas and rent") is Category.TRANSPORTATION


def test_rules_from_config_preserves_order():
    rules = rules_from_config({"Travel": ["hotel"], "Food": ["hotel buffet"]})
    assert suggest("Hotel buffet", rules) is Category.TRAVEL
    assert suggest("grocery", rules) is None

    with pytest.raises(ConfigError):
        rules_from_config({"AI Categorize": ["x"]})


def test_categorize_prefers_explicit_category():
    categorizer = Categorizer()
    draft = TransactionDraft("2024/01/15", "Netflix", "10", category="Other")
    assert categorizer.categorize(draft) is Category.OTHER


def test_categorize_requires_choice_without_match():
    draft = TransactionDraft("2024/01/15", "Bookstore", "10")
    with pytest.raises(CategoryRequiredError, match="Please select a category"):
        Categorizer().categorize(draft)


def _ai_categorizer(provider, timeout=5.0):
    return Categorizer(CategorizationClient(provider, timeout=timeout))


def test_categorize_with_ai_uses_valid_label():
    provider = DummyProvider('{"category": "Medical"}')
    decision = anyio.run(_ai_categorizer(provider).categorize_with_ai, "Pharmacy")
    assert decision.category is Category.MEDICAL
    assert not decision.fell_back
    assert "Pharmacy" in provider.messages[0][1]["content"]
    assert "Select Category" not in provider.messages[0][0]["content"]


def test_categorize_with_ai_coerces_unknown_label():
    provider = DummyProvider('{"category": "Not A Category"}')
    decision = anyio.run(_ai_categorizer(provider).categorize_with_ai, "Pharmacy")
    assert decision.category is Category.OTHER
    assert decision.fell_back
    assert "Not A Category" in str(decision.warning)


def test_categorize_with_ai_falls_back_on_error():
    provider = DummyProvider(OSError("connection refused"))
    decision = anyio.run(_ai_categorizer(provider).categorize_with_ai, "Pharmacy")
    assert decision.category is Category.OTHER
    assert "connection refused" in str(decision.warning)


def test_categorize_with_ai_without_client():
    decision = anyio.run(Categorizer().categorize_with_ai, "Pharmacy")
    assert decision.category is Category.OTHER
    assert decision.fell_back


def test_categorize_async_only_calls_ai_when_requested():
    provider = DummyProvider('{"category": "Travel"}')
    categorizer = _ai_categorizer(provider)

    plain = TransactionDraft("2024/01/15", "Taxi home", "20")
    assert anyio.run(categorizer.categorize_async, plain).category is Category.TRANSPORTATION
    assert provider.calls == 0

    ai = TransactionDraft("2024/01/15", "Taxi home", "20", use_ai=True)
    decision = anyio.run(categorizer.categorize_async, ai)
    assert decision.category is Category.TRAVEL
    assert decision.source == "ai"
    assert provider.calls == 1
