# expense_ledger/errors.py
from dataclasses import dataclass


class LedgerError(Exception):
    """Base class for every error raised by the ingestion engine."""


class ValidationError(LedgerError):
    """User input that cannot become a Transaction."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class CategoryRequiredError(ValidationError):
    """No category was chosen and no keyword rule matched."""

    def __init__(self, description: str = ""):
        self.description = description
        super().__init__(
            "category", "Please select a category or use AI categorization"
        )


class ImportFileError(LedgerError):
    """The import file as a whole could not be read."""


class CategorizationError(LedgerError):
    """The AI categorization call failed, timed out or replied with garbage."""


class PersistenceError(LedgerError):
    """Reading from or writing to the transaction store failed."""


class ConfigError(LedgerError):
    """The configuration file is malformed."""


@dataclass(frozen=True)
class ParseFailure:
    """A single CSV row that was skipped during import."""

    row: int
    reason: str

    def __str__(self) -> str:
        return f"row {self.row}: {self.reason}"
