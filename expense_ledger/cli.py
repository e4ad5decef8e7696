# expense_ledger/cli.py
import logging
import os

import click
from dotenv import load_dotenv

from expense_ledger.config import load_config
from expense_ledger.core.models import AI_CATEGORIZE, TransactionDraft, format_date
from expense_ledger.database import TransactionStore
from expense_ledger.errors import LedgerError
from expense_ledger.manual import load_manual_drafts
from expense_ledger.service import ImportOptions, IngestionService
from expense_ledger.utils import filter_transactions_by_month


def _format_tx(tx):
    return f"{format_date(tx.date)}  {tx.description:<30} {tx.category.value:<15} {tx.amount:>10.2f}"


def _service(ctx):
    return IngestionService.from_config(ctx.obj['config'], ctx.obj['db_path'])


def _store(ctx):
    return TransactionStore(ctx.obj['db_path'] or ctx.obj['config']['db_path'])


@click.group()
@click.option(
    '--config', 'config_path',
    default='config.yaml',
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (defaults are used when it does not exist)'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides db_path from the config)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file containing API tokens for AI providers'
)
@click.pass_context
def main(ctx, config_path, db_path, env_file):
    """Record, import and categorize personal expense transactions."""
    logging.basicConfig(level=os.getenv("TALLYUP_LOG_LEVEL", "WARNING").upper())
    if env_file:
        load_dotenv(env_file)
    try:
        cfg = load_config(config_path)
    except LedgerError as e:
        raise click.ClickException(str(e))
    ctx.obj = {'config': cfg, 'db_path': db_path}


@main.command()
@click.option('--date', 'date_str', required=True, help='Transaction date, YYYY/MM/DD')
@click.option('--description', required=True)
@click.option('--amount', required=True, help='Positive amount spent')
@click.option('--category', default=None, help='Category label; omit to use keyword rules')
@click.option('--ai', 'use_ai', is_flag=True, default=False,
              help='Ask the AI categorizer instead of using keyword rules')
@click.pass_context
def add(ctx, date_str, description, amount, category, use_ai):
    """Record a single transaction."""
    if use_ai and category:
        raise click.UsageError('--category and --ai are mutually exclusive')
    draft = TransactionDraft.from_form(
        date_str, description, AI_CATEGORIZE if use_ai else category, amount
    )
    try:
        tx = _service(ctx).record_manual_transaction(draft)
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"Saved: {_format_tx(tx)}")


@main.command('add-file')
@click.argument('manual_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def add_file(ctx, manual_file):
    """Record every transaction listed in a YAML file."""
    try:
        drafts = load_manual_drafts(manual_file)
    except LedgerError as e:
        raise click.ClickException(str(e))

    service = _service(ctx)
    saved = 0
    for idx, draft in enumerate(drafts, start=1):
        try:
            service.record_manual_transaction(draft)
            saved += 1
        except LedgerError as e:
            click.echo(f"⚠️  Entry {idx}: {e}", err=True)
    click.echo(f"Stored {saved} of {len(drafts)} transaction(s).")


@main.command('import')
@click.argument('csv_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--bank', default='default', help='Bank profile from bank_loaders in the config')
@click.option('--auto-categorize/--no-auto-categorize', default=True,
              help='Use AI for rows no keyword rule matches (default: on)')
@click.option('--detect-seasonal/--no-detect-seasonal', default=True,
              help='Report seasonal spending found in the import (default: on)')
@click.option('--review', is_flag=True, default=False,
              help='Show the categorized rows without saving them')
@click.option('--skip-duplicates', is_flag=True, default=False,
              help='Skip rows already present in the database')
@click.option('--max-concurrency', type=click.IntRange(min=1), default=None,
              help='Maximum number of concurrent AI calls')
@click.pass_context
def import_(ctx, csv_file, bank, auto_categorize, detect_seasonal, review,
            skip_duplicates, max_concurrency):
    """Import a bank CSV export (date,description,amount)."""
    service = _service(ctx)
    if max_concurrency:
        service.max_concurrency = max_concurrency
    options = ImportOptions(
        bank=bank,
        auto_categorize=auto_categorize,
        detect_seasonal=detect_seasonal,
        dry_run=review,
        skip_duplicates=skip_duplicates,
    )
    try:
        report = service.import_file_sync(csv_file, options)
    except LedgerError as e:
        raise click.ClickException(str(e))

    if review:
        for tx in report.saved:
            click.echo(_format_tx(tx))
    click.echo(report.summary())


@main.command('list')
@click.option('--limit', default=10, show_default=True, type=click.IntRange(min=1))
@click.option('--month', default=None, help='Only show transactions from YYYY-MM')
@click.pass_context
def list_(ctx, limit, month):
    """Show the most recent transactions."""
    store = _store(ctx)
    try:
        if month:
            txs = filter_transactions_by_month(store.load_all(), month)[:limit]
        else:
            txs = store.recent(limit)
    except LedgerError as e:
        raise click.ClickException(str(e))
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM, got '{month}'", param_hint='--month')
    if not txs:
        click.echo("No transactions found.")
    for tx in txs:
        click.echo(_format_tx(tx))


@main.command()
@click.pass_context
def summary(ctx):
    """Total spending per category."""
    try:
        rows = _store(ctx).summarize_by_category()
    except LedgerError as e:
        raise click.ClickException(str(e))
    if not rows:
        click.echo("No transactions found.")
    for row in rows:
        click.echo(f"{row['category']:<15} {row['total']:>10.2f}  ({row['transactions']})")
