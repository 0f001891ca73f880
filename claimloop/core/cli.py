# claimloop/core/cli.py
"""
CLI for claimloop workers.

    claimloop worker subject_classification
    claimloop worker flashcards --filter subject_name=Botany
    claimloop check --live
    claimloop status mcq_set
    claimloop list

Configuration comes from the environment (and a .env file in the working
directory): CLAIMLOOP_DATABASE_URL, OPENAI_API_KEY and the per-task
{PREFIX}_* tunables. Custom task types are loaded with --tasks pkg.mod:registry.
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from typing import Any

from dotenv import load_dotenv

from claimloop.core.engine import build_poll_loop
from claimloop.core.errors import (
    ClaimloopError,
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
    RegistryError,
    ValidationReport,
)
from claimloop.core.generation.client import OpenAIGenerativeClient
from claimloop.core.generation.usage import UsageTracker
from claimloop.core.logging import apply_level, get_logger
from claimloop.core.models.config import GenerationConfig, StoreConfig
from claimloop.core.models.rows import RowCounts, TableSpec
from claimloop.core.store.postgres import PostgresTaskStore
from claimloop.core.tasks.base import TaskType
from claimloop.core.tasks.registry import TaskRegistry
from claimloop.core.utils.clock import utc_now
from claimloop.core.utils.imports import load_locator
from claimloop.generators import default_registry

LOGLEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def setup_logging(loglevel: str) -> None:
    """Configure logging level for every claimloop logger."""
    apply_level(getattr(logging, loglevel.upper(), logging.INFO))


def load_registry(locator: str | None) -> TaskRegistry:
    """Built-in task types, or whatever the --tasks locator points at."""
    if not locator:
        return default_registry()

    target: Any = load_locator(locator)
    if isinstance(target, type) and issubclass(target, TaskType):
        target = target()
    elif callable(target) and not isinstance(target, (TaskRegistry, TaskType)):
        target = target()

    match target:
        case TaskRegistry():
            return target
        case TaskType():
            registry = TaskRegistry()
            registry.register(target)
            return registry
        case _:
            raise RegistryError(
                message=f"'{locator}' is not a task registry",
                code=ErrorCode.TASK_INVALID_LOCATOR,
                notes=[f'resolved to {type(target).__name__}'],
                help_text='point --tasks at a TaskRegistry, a TaskType, or a function returning one',
            )


def parse_filters(pairs: list[str] | None) -> dict[str, str]:
    filters: dict[str, str] = {}
    for pair in pairs or []:
        column, sep, value = pair.partition('=')
        if not sep or not column.strip():
            raise ConfigurationError(
                message=f"invalid --filter '{pair}'",
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=['filters are column=value equality pairs'],
                help_text='e.g. --filter subject_name=Botany',
            )
        filters[column.strip()] = value
    return filters


def resolve_table(task: TaskType, filters: dict[str, str]) -> TableSpec:
    table = task.default_table()
    if not filters:
        return table
    return TableSpec.model_validate(
        {**table.model_dump(), 'filters': {**table.filters, **filters}}
    )


def _exit_with(logger: logging.Logger, error: Exception) -> None:
    logger.error(str(error))
    sys.exit(1)


def worker_command(args: argparse.Namespace) -> None:
    """Handle worker command."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)

    try:
        task = load_registry(args.tasks)[args.task]
        config = task.config_from_env()
        table = resolve_table(task, parse_filters(args.filter))
        store_config = StoreConfig.from_env()
        generation_config = GenerationConfig.from_env()
    except ClaimloopError as e:
        _exit_with(logger, e)
        return

    logger.info(
        f'Starting {task.name} worker {config.worker_id} on table {table.table!r} '
        f'(lease {config.lock_lease_ms // 60_000} min)'
    )

    async def run_worker() -> None:
        store = PostgresTaskStore(store_config, table)
        client = OpenAIGenerativeClient(generation_config)
        poll_loop = build_poll_loop(task, store, client, config, usage=UsageTracker())

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info('Received interrupt signal, stopping worker...')
            poll_loop.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                pass

        try:
            await poll_loop.run_forever()
        finally:
            await client.close()
            await store.close()

    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info('Worker interrupted by user')
    except Exception as e:
        logger.error(f'Worker failed: {e}')
        sys.exit(1)


def _collect(report: ValidationReport, error: ClaimloopError) -> None:
    if isinstance(error, MultipleValidationErrors):
        for inner in error.report.errors:
            report.add(inner)
    else:
        report.add(error)


async def _ping(store_config: StoreConfig, tables: list[TableSpec]) -> None:
    for table in tables:
        store = PostgresTaskStore(store_config, table)
        try:
            await store.ping()
            await store.counts(utc_now())
        finally:
            await store.close()


def check_command(args: argparse.Namespace) -> None:
    """Validate configuration without starting a worker."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    report = ValidationReport('check')

    try:
        registry = load_registry(args.tasks)
        names = [args.task] if args.task else registry.keys_list()
        tasks = [registry[name] for name in names]
    except ClaimloopError as e:
        _exit_with(logger, e)
        return

    tables: list[TableSpec] = []
    for task in tasks:
        try:
            task.config_from_env()
            tables.append(resolve_table(task, parse_filters(args.filter)))
        except ClaimloopError as e:
            _collect(report, e.with_note(f'task type: {task.name}'))

    store_config: StoreConfig | None = None
    try:
        store_config = StoreConfig.from_env()
    except ClaimloopError as e:
        _collect(report, e)
    try:
        GenerationConfig.from_env()
    except ClaimloopError as e:
        _collect(report, e)

    if not report.has_errors() and args.live and store_config is not None:
        try:
            asyncio.run(_ping(store_config, tables))
        except Exception as e:
            report.add(
                ConfigurationError(
                    message='task store is not reachable',
                    code=ErrorCode.CONFIG_MISSING_CONNECTION,
                    notes=[f'{type(e).__name__}: {e}'],
                    help_text='check CLAIMLOOP_DATABASE_URL and that the task tables exist',
                )
            )

    if report.has_errors():
        print(report.format_rust_style(), file=sys.stderr)
        sys.exit(1)
    print(f'ok: all validations passed\n  {len(tasks)} task type(s) checked')
    sys.exit(0)


def status_command(args: argparse.Namespace) -> None:
    """Print pending / claimed / expired / done counts for one task table."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)

    try:
        task = load_registry(args.tasks)[args.task]
        config = task.config_from_env()
        table = resolve_table(task, parse_filters(args.filter))
        store_config = StoreConfig.from_env()
    except ClaimloopError as e:
        _exit_with(logger, e)
        return

    async def fetch() -> RowCounts:
        store = PostgresTaskStore(store_config, table)
        try:
            cutoff = utc_now() - timedelta(milliseconds=config.lock_lease_ms)
            return await store.counts(cutoff)
        finally:
            await store.close()

    try:
        counts = asyncio.run(fetch())
    except Exception as e:
        logger.error(f'Status query failed: {e}')
        sys.exit(1)

    print(f'{task.name} ({table.table}.{table.result_column})')
    print(f'  pending  {counts.pending:>10}')
    print(f'  claimed  {counts.claimed:>10}')
    print(f'  expired  {counts.expired:>10}')
    print(f'  done     {counts.done:>10}')
    print(f'  total    {counts.total:>10}')


def list_command(args: argparse.Namespace) -> None:
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    try:
        registry = load_registry(args.tasks)
    except ClaimloopError as e:
        _exit_with(logger, e)
        return

    for name in registry.keys_list():
        task = registry[name]
        table = task.default_table()
        print(
            f'{name:<24} {table.table}.{table.result_column:<20} '
            f'env={task.env_prefix}_*  chunk={task.default_chunk_size}'
        )


def _add_common(parser: argparse.ArgumentParser, default_level: str) -> None:
    parser.add_argument(
        '--loglevel',
        choices=LOGLEVELS,
        default=default_level,
        type=str.upper,
        help=f'Logging level (default: {default_level})',
    )
    parser.add_argument(
        '--tasks',
        dest='tasks',
        default=None,
        help='Locator of a custom task registry (e.g. myproject.tasks:registry)',
    )


def _add_filter(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--filter',
        action='append',
        metavar='COLUMN=VALUE',
        help='Extra equality row filter; may be repeated',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='claimloop',
        description='claimloop - lease-based content generation workers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  claimloop worker subject_classification
  claimloop worker flashcards --filter subject_name=Botany
  claimloop check --live
  claimloop status mcq_set
  claimloop list
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    worker_parser = subparsers.add_parser('worker', help='Run a poll loop for one task type')
    worker_parser.add_argument('task', help='Task type name (see `claimloop list`)')
    _add_filter(worker_parser)
    _add_common(worker_parser, 'INFO')

    check_parser = subparsers.add_parser(
        'check', help='Validate configuration without starting a worker'
    )
    check_parser.add_argument('task', nargs='?', help='Task type name (default: all)')
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also check task store connectivity and table access',
    )
    _add_filter(check_parser)
    _add_common(check_parser, 'WARNING')

    status_parser = subparsers.add_parser('status', help='Show row counts of a task table')
    status_parser.add_argument('task', help='Task type name')
    _add_filter(status_parser)
    _add_common(status_parser, 'WARNING')

    list_parser = subparsers.add_parser('list', help='List available task types')
    _add_common(list_parser, 'WARNING')

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    try:
        load_dotenv()
        parser = build_parser()
        args = parser.parse_args(argv)

        match args.command:
            case 'worker':
                worker_command(args)
            case 'check':
                check_command(args)
            case 'status':
                status_command(args)
            case 'list':
                list_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
