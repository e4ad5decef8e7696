# expense_ledger/config.py
import copy
from pathlib import Path

import yaml

from expense_ledger.errors import ConfigError
from expense_ledger.loaders import DEFAULT_BANK_LOADERS

DEFAULT_CONFIG = {
    'db_path': 'data/transactions.db',
    'ai': {
        'provider': 'deepseek',
        'timeout': 15,
        'max_concurrency': 4,
    },
    'bank_loaders': DEFAULT_BANK_LOADERS,
    # Optional keyword table overriding the built-in rules: label -> keywords.
    'categories': None,
}


def load_config(path=None):
    """Load a YAML config file merged over DEFAULT_CONFIG.

    A missing file yields the defaults. Mapping sections are merged one
    level deep so a file can add a bank without repeating the others.
    """
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if path is None or not Path(path).exists():
        return cfg
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    for key, value in data.items():
        if isinstance(value, dict) and isinstance(cfg.get(key), dict):
            cfg[key].update(value)
        else:
            cfg[key] = value
    return cfg
