# expense_ledger/loaders/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List

from expense_ledger.errors import ParseFailure


@dataclass(frozen=True)
class TransactionCandidate:
    """A parsed CSV row, not yet categorized or validated."""

    row: int
    date: date
    description: str
    amount: Decimal


@dataclass
class LoadResult:
    candidates: List[TransactionCandidate] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)


class BaseLoader(ABC):
    @abstractmethod
    def load(self, file_path: str) -> LoadResult:
        """
        Parse file_path into transaction candidates.
        Malformed rows end up in LoadResult.failures instead of raising;
        only a file that cannot be read at all raises ImportFileError.
        """
        pass
