# expense_ledger/manual.py
import yaml

from expense_ledger.core.models import TransactionDraft
from expense_ledger.errors import ImportFileError, ValidationError


def load_manual_drafts(path):
    """Load manual transaction drafts from a YAML file.

    Each entry needs ``date``, ``description`` and ``amount``; ``category``
    is optional and may be "AI Categorize" to request AI categorization.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as e:
        raise ImportFileError(f"Could not read {path}: {e}") from e
    if not isinstance(data, list):
        raise ImportFileError(f"{path} must contain a list of entries")

    drafts = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValidationError("entry", f"expected a mapping, got {entry!r}")
        if entry.get('date') is None:
            raise ValidationError("date", f"missing in manual entry: {entry}")
        drafts.append(
            TransactionDraft.from_form(
                entry['date'],
                entry.get('description', ''),
                entry.get('category'),
                entry.get('amount'),
            )
        )
    return drafts
