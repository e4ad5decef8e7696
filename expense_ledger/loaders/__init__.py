# expense_ledger/loaders/__init__.py
from importlib import import_module

from expense_ledger.errors import ConfigError, ImportFileError

DEFAULT_LOADER = 'expense_ledger.loaders.csv_loader.CsvLoader'

DEFAULT_BANK_LOADERS = {
    'default': {
        'loader': DEFAULT_LOADER,
        'date_formats': ['%Y/%m/%d', '%Y-%m-%d', '%Y%m%d'],
    },
}


def get_loader(name, config):
    """Instantiate the loader configured for bank *name*.

    ``bank_loaders`` entries are either a dotted class path or a mapping
    with a ``loader`` path plus keyword arguments for the loader.
    """
    loaders = {k.lower(): v for k, v in (config.get('bank_loaders') or DEFAULT_BANK_LOADERS).items()}
    key = (name or 'default').lower()
    if key not in loaders:
        raise ImportFileError(
            f"Unknown bank '{name}'. Configured banks: {', '.join(sorted(loaders))}"
        )
    entry = loaders[key]
    if isinstance(entry, str):
        loader_path, options = entry, {}
    else:
        options = dict(entry or {})
        loader_path = options.pop('loader', DEFAULT_LOADER)
    module_name, cls_name = loader_path.rsplit('.', 1)
    try:
        cls = getattr(import_module(module_name), cls_name)
    except (ImportError, AttributeError) as exc:
        raise ConfigError(f"Cannot load bank loader '{loader_path}': {exc}") from exc
    return cls(**options)
