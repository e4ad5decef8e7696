# expense_ledger/utils.py
from dataclasses import dataclass
from decimal import Decimal

from expense_ledger.core.models import Category


def filter_transactions_by_month(transactions, month_str):
    """
    Return only those transactions whose date falls in the given YYYY-MM.
    """
    year, month = map(int, month_str.split('-'))
    return [tx for tx in transactions if tx.date.year == year and tx.date.month == month]


def transaction_key(tx):
    """Identity used for duplicate detection: (date, description, amount)."""
    return (tx.date, tx.description, tx.amount)


@dataclass(frozen=True)
class SeasonalNotice:
    total: Decimal
    share: Decimal
    transactions: int

    def __str__(self):
        return (
            f"Seasonal spending notice: {self.total:.2f} across "
            f"{self.transactions} transaction(s), {self.share:.0%} of this import."
        )


def seasonal_notice(transactions):
    """Summarize Seasonal-category spending, or None when there is none."""
    transactions = list(transactions)
    seasonal = [tx for tx in transactions if tx.category is Category.SEASONAL]
    if not seasonal:
        return None
    total = sum((tx.amount for tx in transactions), Decimal(0))
    seasonal_total = sum((tx.amount for tx in seasonal), Decimal(0))
    return SeasonalNotice(
        total=seasonal_total,
        share=seasonal_total / total,
        transactions=len(seasonal),
    )
