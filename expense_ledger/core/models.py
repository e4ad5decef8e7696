# expense_ledger/core/models.py
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from expense_ledger.errors import ValidationError

DATE_FORMAT = "%Y/%m/%d"

# Presentation-layer affordances, never valid categories.
SELECT_CATEGORY = "Select Category"
AI_CATEGORIZE = "AI Categorize"
SENTINEL_LABELS = frozenset({SELECT_CATEGORY, AI_CATEGORIZE})

_ALIASES = {"chinese new year": "Seasonal"}


class Category(str, Enum):
    HOUSING = "Housing"
    FOOD = "Food"
    TRANSPORTATION = "Transportation"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    UTILITIES = "Utilities"
    SEASONAL = "Seasonal"
    EDUCATION = "Education"
    MEDICAL = "Medical"
    TRAVEL = "Travel"
    OTHER = "Other"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def labels(cls) -> list[str]:
        return [c.value for c in cls]

    @classmethod
    def parse(cls, label) -> "Category":
        """Return the category named by *label* (case-insensitive)."""
        if isinstance(label, Category):
            return label
        if label is None or not str(label).strip():
            raise ValidationError("category", "no category selected")
        text = str(label).strip()
        if text in SENTINEL_LABELS:
            raise ValidationError(
                "category",
                f"'{text}' is not a category, please select a specific category",
            )
        text = _ALIASES.get(text.lower(), text)
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        raise ValidationError("category", f"unknown category '{text}'")


def parse_date(value) -> date:
    """Parse a canonical ``YYYY/MM/DD`` string (dates pass through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError("date", f"expected YYYY/MM/DD, got {value!r}")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(
            "date", f"'{value}' is not a valid date in YYYY/MM/DD format"
        ) from None


def parse_amount(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("amount", f"'{value}' is not a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("amount", f"'{value}' is not a number") from None
    if not amount.is_finite():
        raise ValidationError("amount", "must be a finite number")
    if amount <= 0:
        raise ValidationError("amount", "must be greater than zero")
    return amount


def parse_description(value) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError("description", "must not be empty")
    return text


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


@dataclass(frozen=True)
class Transaction:
    """A validated expense. Construction fails with ValidationError."""

    date: date
    description: str
    category: Category
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "description", parse_description(self.description))
        object.__setattr__(self, "amount", parse_amount(self.amount))
        object.__setattr__(self, "date", parse_date(self.date))
        object.__setattr__(self, "category", Category.parse(self.category))


def parse_transaction(date_value, description, category, amount) -> Transaction:
    return Transaction(
        date=date_value, description=description, category=category, amount=amount
    )


@dataclass
class TransactionDraft:
    """Unvalidated user input for a single transaction.

    ``category`` is ``None`` when the user has not picked one yet and
    ``use_ai`` is set when AI categorization was explicitly requested.
    """

    date: str | date
    description: str
    amount: str | Decimal | float
    category: str | Category | None = None
    use_ai: bool = False

    @classmethod
    def from_form(cls, date_value, description, category_label, amount):
        """Map the entry form's sentinel selections onto a draft."""
        if category_label == AI_CATEGORIZE:
            return cls(date_value, description, amount, category=None, use_ai=True)
        if category_label in (None, "", SELECT_CATEGORY):
            category_label = None
        return cls(date_value, description, amount, category=category_label)

    def validate(self) -> None:
        """Check every field except the category."""
        parse_date(self.date)
        parse_description(self.description)
        parse_amount(self.amount)

    def to_transaction(self, category) -> Transaction:
        return parse_transaction(self.date, self.description, category, self.amount)
