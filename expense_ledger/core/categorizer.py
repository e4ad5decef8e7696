# expense_ledger/core/categorizer.py
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence, Tuple

from expense_ledger.core.models import Category, TransactionDraft
from expense_ledger.errors import (
    CategorizationError,
    CategoryRequiredError,
    ConfigError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Rule = Tuple[Category, Tuple[str, ...]]

# Order matters: the first rule with a matching keyword wins.
DEFAULT_RULES: Tuple[Rule, ...] = (
    (Category.FOOD, ("grocery", "food", "restaurant")),
    (Category.TRANSPORTATION, ("gas", "uber", "taxi")),
    (Category.HOUSING, ("rent", "mortgage")),
    (Category.ENTERTAINMENT, ("movie", "netflix", "game")),
    (Category.SEASONAL, ("hongbao", "gift", "new year")),
)


def suggest(description: str, rules: Sequence[Rule] = DEFAULT_RULES) -> Category | None:
    name = (description or "").lower()
    for cat, keywords in rules:
        for kw in keywords:
            if kw.lower() in name:
                return cat
    return None


def rules_from_config(categories: Mapping[str, Iterable[str]]) -> Tuple[Rule, ...]:
    """Build a rule table from the ``categories`` config section.

    The mapping's order is the rule priority.
    """
    rules = []
    for label, keywords in categories.items():
        try:
            cat = Category.parse(label)
        except ValidationError as exc:
            raise ConfigError(f"categories: {exc.reason}") from exc
        if isinstance(keywords, str):
            keywords = [keywords]
        kws = tuple(str(k).strip() for k in keywords or () if str(k).strip())
        rules.append((cat, kws))
    return tuple(rules)


@dataclass(frozen=True)
class CategoryDecision:
    category: Category
    source: str
    warning: CategorizationError | None = None

    @property
    def fell_back(self) -> bool:
        return self.warning is not None


class Categorizer:
    """Combine keyword rules with an optional AI client.

    Explicit AI requests never fail: a broken call or an out-of-vocabulary
    reply downgrades the category to ``Other``. Without an AI request the
    rules either match or the caller has to pick a category.
    """

    def __init__(self, client=None, rules: Sequence[Rule] = DEFAULT_RULES):
        self.client = client
        self.rules = tuple(rules)

    @property
    def allowed_labels(self) -> list[str]:
        return Category.labels()

    def suggest(self, description: str) -> Category | None:
        return suggest(description, self.rules)

    def categorize(self, draft: TransactionDraft) -> Category:
        if draft.category is not None:
            return Category.parse(draft.category)
        cat = self.suggest(draft.description)
        if cat is None:
            raise CategoryRequiredError(draft.description)
        return cat

    async def categorize_with_ai(self, description: str) -> CategoryDecision:
        if self.client is None:
            warning = CategorizationError("AI categorization is not configured")
        else:
            try:
                result = await self.client.categorize(description, self.allowed_labels)
            except CategorizationError as exc:
                warning = exc
            else:
                if result.valid:
                    return CategoryDecision(Category.parse(result.label), "ai")
                warning = CategorizationError(
                    f"AI returned '{result.label}', which is not an allowed category"
                )
        logger.warning(
            "AI categorization of %r fell back to %s: %s",
            description,
            Category.OTHER,
            warning,
        )
        return CategoryDecision(Category.OTHER, "fallback", warning)

    async def categorize_async(self, draft: TransactionDraft) -> CategoryDecision:
        if draft.use_ai and draft.category is None:
            return await self.categorize_with_ai(draft.description)
        source = "user" if draft.category is not None else "rules"
        return CategoryDecision(self.categorize(draft), source)
