import threading
import time

import pytest

from expense_ledger.ai import CategorizationClient
from expense_ledger.core.categorizer import Categorizer
from expense_ledger.database import TransactionStore
from expense_ledger.service import IngestionService


class DummyProvider:
    """Stand-in LLM provider returning a canned reply."""

    def __init__(self, reply='{"category": "Shopping"}', delay=0.0, on_call=None):
        self.reply = reply
        self.delay = delay
        self.on_call = on_call
        self.messages = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    @property
    def calls(self):
        return len(self.messages)

    def generate(self, messages):
        with self._lock:
            self.messages.append(messages)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call:
                self.on_call()
            if self.delay:
                time.sleep(self.delay)
            if isinstance(self.reply, Exception):
                raise self.reply
            return self.reply
        finally:
            with self._lock:
                self.in_flight -= 1


def write_csv(path, lines):
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def store(tmp_path):
    return TransactionStore(str(tmp_path / "txs.db"))


@pytest.fixture
def make_service(store):
    def _make(provider=None, timeout=5.0, max_concurrency=4):
        client = CategorizationClient(provider, timeout=timeout) if provider else None
        return IngestionService(
            store, Categorizer(client), max_concurrency=max_concurrency
        )
    return _make
