# expense_ledger/service.py
"""Entry points used by the presentation layer.

Manual entry and CSV import both end in :class:`TransactionStore`. Rows of
an import are categorized by a fixed pool of workers (so at most
``max_concurrency`` AI calls are in flight) but saved one at a time in file
order.
"""
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Dict, List

import anyio

from expense_ledger.ai import client_from_config
from expense_ledger.core.categorizer import DEFAULT_RULES, Categorizer, rules_from_config
from expense_ledger.core.models import Transaction, TransactionDraft
from expense_ledger.database import TransactionStore
from expense_ledger.errors import ConfigError, ParseFailure, PersistenceError, ValidationError
from expense_ledger.loaders import get_loader
from expense_ledger.loaders.base import TransactionCandidate
from expense_ledger.utils import SeasonalNotice, seasonal_notice, transaction_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


@dataclass
class ImportOptions:
    bank: str = "default"
    # Ask the AI for rows no keyword rule matches.
    auto_categorize: bool = True
    detect_seasonal: bool = True
    # Categorize and report without saving anything.
    dry_run: bool = False
    skip_duplicates: bool = False


@dataclass
class ImportReport:
    saved: List[Transaction] = field(default_factory=list)
    row_failures: List[ParseFailure] = field(default_factory=list)
    # Rows saved as Other because AI categorization failed.
    categorization_failures: List[int] = field(default_factory=list)
    # Rows with no keyword match while AI was not requested; not saved.
    uncategorized: List[int] = field(default_factory=list)
    duplicates: List[int] = field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False
    seasonal_notice: SeasonalNotice | None = None

    def summary(self) -> str:
        verb = "Would save" if self.dry_run else "Saved"
        lines = [f"{verb} {len(self.saved)} transaction(s)."]
        if self.row_failures:
            lines.append(f"Skipped {len(self.row_failures)} malformed row(s):")
            lines.extend(f"  {failure}" for failure in self.row_failures)
        if self.categorization_failures:
            lines.append(
                f"AI categorization failed for {len(self.categorization_failures)} "
                f"row(s), saved as Other: rows {_rows(self.categorization_failures)}"
            )
        if self.uncategorized:
            lines.append(
                f"{len(self.uncategorized)} row(s) need a category: "
                f"rows {_rows(self.uncategorized)}"
            )
        if self.duplicates:
            lines.append(
                f"Skipped {len(self.duplicates)} duplicate row(s): "
                f"rows {_rows(self.duplicates)}"
            )
        if self.cancelled:
            lines.append("Import cancelled; remaining rows were not saved.")
        if self.seasonal_notice:
            lines.append(str(self.seasonal_notice))
        return "\n".join(lines)


def _rows(rows):
    return ", ".join(str(r) for r in rows)


def _cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


@dataclass
class _RowOutcome:
    row: int
    transaction: Transaction | None = None
    failure: ParseFailure | None = None
    fell_back: bool = False
    uncategorized: bool = False
    discarded: bool = False


class IngestionService:
    def __init__(
        self,
        store: TransactionStore,
        categorizer: Categorizer | None = None,
        config: dict | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.categorizer = categorizer or Categorizer()
        self.config = config or {}
        self.max_concurrency = max_concurrency

    @classmethod
    def from_config(cls, config: dict, db_path: str | None = None) -> "IngestionService":
        ai_cfg = config.get("ai") or {}
        try:
            client = client_from_config(ai_cfg)
        except ConfigError as e:
            logger.info("AI categorization disabled: %s", e)
            client = None
        categories = config.get("categories")
        rules = rules_from_config(categories) if categories else DEFAULT_RULES
        return cls(
            TransactionStore(db_path or config["db_path"]),
            Categorizer(client, rules),
            config=config,
            max_concurrency=int(ai_cfg.get("max_concurrency", DEFAULT_MAX_CONCURRENCY)),
        )

    # ------------------------------------------------------------------
    # Manual entry
    # ------------------------------------------------------------------

    def record_manual_transaction(self, draft: TransactionDraft) -> Transaction:
        """Validate, categorize and save a single draft.

        Drafts that request AI categorization are driven through the async
        path with ``anyio.run``; from async code use
        :meth:`record_manual_transaction_async` instead.
        """
        if draft.use_ai and draft.category is None:
            return anyio.run(self.record_manual_transaction_async, draft)
        draft.validate()
        tx = draft.to_transaction(self.categorizer.categorize(draft))
        self.store.save(tx)
        logger.info("Recorded %s", tx)
        return tx

    async def record_manual_transaction_async(self, draft: TransactionDraft) -> Transaction:
        draft.validate()
        decision = await self.categorizer.categorize_async(draft)
        tx = draft.to_transaction(decision.category)
        await anyio.to_thread.run_sync(self.store.save, tx)
        logger.info("Recorded %s (%s)", tx, decision.source)
        return tx

    # ------------------------------------------------------------------
    # CSV import
    # ------------------------------------------------------------------

    def import_file_sync(self, path, options=None, cancel=None) -> ImportReport:
        return anyio.run(self.import_file, path, options, cancel)

    async def import_file(
        self,
        path,
        options: ImportOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> ImportReport:
        """Parse, categorize and save every row of a bank CSV export.

        Setting *cancel* stops further rows from being saved; AI calls
        already in flight finish but their results are dropped. Rows saved
        before the cancellation stay in the store.
        """
        options = options or ImportOptions()
        loader = get_loader(options.bank, self.config)
        loaded = await anyio.to_thread.run_sync(loader.load, str(path))
        candidates = loaded.candidates

        report = ImportReport(row_failures=list(loaded.failures), dry_run=options.dry_run)
        row_send, row_receive = anyio.create_memory_object_stream(math.inf)
        send, receive = anyio.create_memory_object_stream(math.inf)
        for item in enumerate(candidates):
            row_send.send_nowait(item)
        row_send.close()

        pending: Dict[int, _RowOutcome] = {}
        seen = set()
        error = None

        async def worker(rows, results):
            async with rows, results:
                async for position, candidate in rows:
                    outcome = await self._resolve_row(candidate, options, cancel)
                    await results.send((position, outcome))

        async with send, receive:
            async with anyio.create_task_group() as tg:
                for _ in range(min(self.max_concurrency, len(candidates))):
                    tg.start_soon(worker, row_receive.clone(), send.clone())
                row_receive.close()
                send.close()
                next_position = 0
                try:
                    async for position, outcome in receive:
                        pending[position] = outcome
                        while next_position in pending:
                            await self._commit_row(
                                pending.pop(next_position), report, options, cancel, seen
                            )
                            next_position += 1
                except PersistenceError as e:
                    error = e
                    tg.cancel_scope.cancel()
        if error is not None:
            raise error

        report.row_failures.sort(key=lambda f: f.row)
        if options.detect_seasonal:
            report.seasonal_notice = seasonal_notice(report.saved)
        logger.info(
            "Imported %s: %d saved, %d malformed, %d AI fallback(s), %d uncategorized",
            path,
            len(report.saved),
            len(report.row_failures),
            len(report.categorization_failures),
            len(report.uncategorized),
        )
        return report

    async def _resolve_row(
        self,
        candidate: TransactionCandidate,
        options: ImportOptions,
        cancel: threading.Event | None,
    ) -> _RowOutcome:
        row = candidate.row
        draft = TransactionDraft(candidate.date, candidate.description, candidate.amount)
        try:
            draft.validate()
        except ValidationError as e:
            return _RowOutcome(row, failure=ParseFailure(row, str(e)))

        category = self.categorizer.suggest(candidate.description)
        fell_back = False
        if category is None:
            if not options.auto_categorize:
                return _RowOutcome(row, uncategorized=True)
            if _cancelled(cancel):
                return _RowOutcome(row, discarded=True)
            decision = await self.categorizer.categorize_with_ai(candidate.description)
            category, fell_back = decision.category, decision.fell_back
        return _RowOutcome(row, transaction=draft.to_transaction(category), fell_back=fell_back)

    async def _commit_row(self, outcome, report, options, cancel, seen) -> None:
        if outcome.failure is not None:
            report.row_failures.append(outcome.failure)
            return
        if outcome.uncategorized:
            report.uncategorized.append(outcome.row)
            return
        if outcome.discarded or _cancelled(cancel):
            report.cancelled = True
            return

        tx = outcome.transaction
        if options.skip_duplicates:
            key = transaction_key(tx)
            if key in seen or await anyio.to_thread.run_sync(self.store.exists, tx):
                report.duplicates.append(outcome.row)
                return
            seen.add(key)
        if not options.dry_run:
            await anyio.to_thread.run_sync(self.store.save, tx)
        report.saved.append(tx)
        if outcome.fell_back:
            report.categorization_failures.append(outcome.row)
