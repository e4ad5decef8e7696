# expense_ledger/loaders/csv_loader.py

import csv
import logging
import re
from decimal import Decimal, InvalidOperation

import pandas as pd

from expense_ledger.errors import ImportFileError, ParseFailure
from expense_ledger.loaders.base import BaseLoader, LoadResult, TransactionCandidate

logger = logging.getLogger(__name__)

# Currency symbols, whitespace and thousands separators
_CLEAN_AMOUNT = re.compile(r"[\s$¥€£,]")
_AMOUNT_RX = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)$")
DEFAULT_HEADER_NAMES = ('date', 'description', 'amount')

DEFAULT_DATE_FORMATS = ('%Y/%m/%d', '%Y-%m-%d', '%Y%m%d')


class CsvLoader(BaseLoader):
    """
    Loader for comma-separated bank exports.
    Expected columns, in this order:
      0: Date         (one of ``date_formats``, tried in order)
      1: Description
      2: Amount       (e.g. "85.43", "$1,200.00" or "(12.00)" for a credit)

    The first row is skipped only when its cells are exactly the column
    names in ``header_names`` (case-insensitive). Trailing empty cells are
    ignored; any other column count is a row failure.
    """

    def __init__(self, date_formats=None, encoding='utf-8-sig', delimiter=',',
                 header_names=None):
        if isinstance(date_formats, str):
            date_formats = [date_formats]
        self.date_formats = tuple(date_formats or DEFAULT_DATE_FORMATS)
        self.header_names = tuple(
            name.strip().lower() for name in (header_names or DEFAULT_HEADER_NAMES)
        )
        self.encoding = encoding
        self.delimiter = delimiter

    def load(self, file_path):
        try:
            with open(file_path, newline='', encoding=self.encoding) as f:
                rows = list(enumerate(csv.reader(f, delimiter=self.delimiter), start=1))
        except FileNotFoundError:
            raise ImportFileError(f"File not found: {file_path}") from None
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise ImportFileError(f"Could not read {file_path}: {e}") from e

        rows = [(idx, row) for idx, row in rows if any(c.strip() for c in row)]
        if not rows:
            raise ImportFileError(f"No rows found in {file_path}")
        if self._is_header(rows[0][1]):
            rows = rows[1:]

        result = LoadResult()
        for idx, row in rows:
            try:
                result.candidates.append(self._parse_row(idx, row))
            except ValueError as e:
                result.failures.append(ParseFailure(idx, str(e)))

        logger.info(
            "Parsed %s: %d row(s), %d malformed",
            file_path, len(result.candidates), len(result.failures),
        )
        return result

    def _is_header(self, row):
        cells = [c.strip().lower() for c in row]
        while cells and not cells[-1]:
            cells.pop()
        return tuple(cells) == self.header_names

    def _parse_row(self, idx, row):
        cells = [c.strip() for c in row]
        while cells and not cells[-1]:
            cells.pop()
        if len(cells) != 3:
            raise ValueError(
                f"expected 3 columns (date, description, amount), found {len(cells)}"
            )
        raw_date, desc, amt_raw = cells
        d = self._parse_date(raw_date)
        if not desc:
            raise ValueError("missing description")
        amount = _parse_amount(amt_raw)
        return TransactionCandidate(row=idx, date=d, description=desc, amount=amount)

    def _parse_date(self, value):
        if not value:
            raise ValueError("missing date")
        for fmt in self.date_formats:
            try:
                parsed = pd.to_datetime(value, format=fmt)
            except (ValueError, TypeError):
                continue
            if not pd.isna(parsed):
                return parsed.date()
        raise ValueError(f"could not parse date '{value}'")


def _parse_amount(raw):
    text = raw
    negative = text.startswith('(') and text.endswith(')')
    if negative:
        text = text[1:-1]
    cleaned = _CLEAN_AMOUNT.sub('', text)
    # Exponents, NaN and stray letters are rejected rather than stripped.
    if not _AMOUNT_RX.match(cleaned):
        raise ValueError(f"could not parse amount '{raw}'")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"could not parse amount '{raw}'") from None
    return -amount if negative else amount
