from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from crm_recon.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from crm_recon.db.store import EntityStore, PostgresEntityStore, SnapshotEntityStore
from crm_recon.excel.reader import (
    SheetHeaderError,
    TabularSource,
    UnsupportedSourceError,
    read_table,
)
from crm_recon.logging.error_log import ErrorLogBuffer
from crm_recon.logging.init import get_logger, log_summary, setup_logging
from crm_recon.models.fields import FieldMapping, parse_target
from crm_recon.models.validation import Severity
from crm_recon.services.executor import run_client_import, run_invoice_import
from crm_recon.services.field_mapping import infer_mapping
from crm_recon.services.index import ExistingEntityIndex
from crm_recon.services.matcher import find_duplicate_groups
from crm_recon.services.selector import BatchSelector
from crm_recon.services.summary import render_client_summary, render_invoice_summary
from crm_recon.services.validator import validate_rows

"""CLI entrypoint.

    python -m crm_recon.cli clients FILE [--exclude-warnings] [--mapping H=F ...]
    python -m crm_recon.cli invoices FILE
    python -m crm_recon.cli audit

Flow: load .env and config -> open the entity store (PostgreSQL, or the
snapshot store in mock mode) -> load the existing-entity index once -> read
the upload -> validate/match -> create sequentially -> SUMMARY line.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _resolve_dsn(cfg: AppConfig) -> str:
    """Connection string; environment (.env included) wins over the config file."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _open_connection(cfg: AppConfig) -> Any | None:
    """psycopg2 connection, or None when the database cannot be reached."""
    try:
        conn = psycopg2.connect(_resolve_dsn(cfg))
    except psycopg2.OperationalError as e:
        get_logger().info(f"DB connection failed -> fallback to mock mode: {e}")
        return None
    conn.autocommit = False
    return conn


@contextmanager
def _db_cursor(conn: Any) -> Iterator[Any]:
    """Yield a cursor; commit on normal exit, roll back on error."""
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """.env values override the process environment so DB settings come from it first."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="crm-recon", description="CRM bulk import and invoice reconciliation"
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Validate/match only, create nothing")
    sub = p.add_subparsers(dest="command", required=True)

    clients = sub.add_parser("clients", help="Bulk import clients from a spreadsheet")
    clients.add_argument("file", type=Path)
    clients.add_argument(
        "--mapping",
        action="append",
        default=[],
        metavar="HEADER=FIELD",
        help="Assign a header to a field (repeatable; FIELD may be 'ignore')",
    )
    clients.add_argument(
        "--exclude-warnings", action="store_true", help="Leave rows with warnings out of the import"
    )
    clients.add_argument(
        "--inspect-data", action="store_true", help="Print headers, inferred mapping and first rows then exit"
    )

    invoices = sub.add_parser("invoices", help="Upload a batch of invoices")
    invoices.add_argument("file", type=Path)

    sub.add_parser("audit", help="Report persisted invoices sharing a number")
    return p.parse_args(argv)


def _read_source(path: Path, cfg: AppConfig) -> TabularSource:
    return read_table(
        path,
        sheet=cfg.reader.sheet,
        header_row=cfg.reader.header_row,
        keep_na_strings=cfg.reader.keep_na_strings,
        null_sentinels=cfg.reader.null_sentinels,
    )


def _build_mapping(source: TabularSource, cfg: AppConfig, overrides: list[str]) -> FieldMapping:
    preset = FieldMapping(source.headers)
    preset.apply_presets(cfg.client_mapping)
    mapping = infer_mapping(source.headers, preset)
    for item in overrides:
        header, sep, field = item.partition("=")
        if not sep:
            raise ValueError(f"--mapping expects HEADER=FIELD, got '{item}'")
        header = header.strip()
        if header not in mapping:
            raise ValueError(f"--mapping: header '{header}' not in {source.name}")
        demoted = mapping.set_mapping(header, parse_target(field))
        if demoted is not None:
            print(f"INFO mapping: '{demoted}' -> ignore ('{header}' now holds {field.strip()})")
    return mapping


def _inspect_data(source: TabularSource, mapping: FieldMapping) -> int:
    print(f"FILE: {source.name} rows={len(source.records)}")
    for header in source.headers:
        target = mapping.get(header)
        print(f"  {header!r} -> {getattr(target, 'value', target)}")
    for record in source.records[:3]:
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in record.cells}
        print(f"  row {record.row_number}: {safe}")
    return EXIT_SUCCESS_ALL


def _run_clients(args: argparse.Namespace, cfg: AppConfig, store: EntityStore, logger: Any) -> int:
    source = _read_source(args.file, cfg)
    mapping = _build_mapping(source, cfg, args.mapping)
    if args.inspect_data:
        return _inspect_data(source, mapping)

    index = ExistingEntityIndex.load(store)
    results = validate_rows(source.records, mapping, index)
    selector = BatchSelector(results)
    if args.exclude_warnings:
        selector.exclude_all_warnings()
    for r in results:
        for issue in r.issues:
            if issue.severity is Severity.ERROR:
                logger.error(f"row={r.raw.row_number} {issue.message}")
            else:
                logger.warning(f"row={r.raw.row_number} {issue.message}")
    accepted = selector.accepted()
    logger.info(
        f"rows={len(results)} errors={selector.error_count} warnings={selector.warning_count} "
        f"selected={selector.selected_count}"
    )
    if args.dry_run:
        return EXIT_SUCCESS_ALL if selector.error_count == 0 else EXIT_PARTIAL_FAILURE

    error_log = ErrorLogBuffer()
    report = run_client_import(
        accepted,
        mapping,
        index.owners,
        store.create_client,
        error_log=error_log,
        source=source.name,
    )
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    for failure in report.failures:
        logger.error(f"row={failure.row_number} '{failure.label}': {failure.reason}")
    log_summary(render_client_summary(report)[len("SUMMARY "):])
    if report.all_succeeded and len(accepted) == len(results):
        return EXIT_SUCCESS_ALL
    return EXIT_PARTIAL_FAILURE


def _run_invoices(args: argparse.Namespace, cfg: AppConfig, store: EntityStore, logger: Any) -> int:
    source = _read_source(args.file, cfg)
    missing = cfg.invoice_columns.missing_from(source.headers)
    if missing:
        logger.error(f"{source.name}: missing invoice columns {missing}")
        return EXIT_FATAL

    index = ExistingEntityIndex.load(store)
    if args.dry_run:
        def create(payload: dict[str, Any]) -> str:
            return "dry-run"
    else:
        create = store.create_invoice

    error_log = ErrorLogBuffer()
    report = run_invoice_import(
        source.records,
        cfg.invoice_columns,
        index,
        create,
        error_log=error_log,
        source=source.name,
        owners=index.owners,
    )
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    log_summary(render_invoice_summary(report)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL if report.all_succeeded else EXIT_PARTIAL_FAILURE


def _run_audit(store: EntityStore, logger: Any) -> int:
    index = ExistingEntityIndex.load(store)
    groups = find_duplicate_groups(index.invoices)
    for group in groups:
        labels = ", ".join(inv.label for inv in group.invoices)
        suffix = " (credit note involved)" if group.has_credit_note else ""
        logger.warning(f"number {group.normalized_number} shared by {labels}{suffix}")
    log_summary(f"audit invoices={len(index.invoices)} duplicate_groups={len(groups)}")
    return EXIT_SUCCESS_ALL if not groups else EXIT_PARTIAL_FAILURE


def _snapshot_store(cfg: AppConfig) -> SnapshotEntityStore:
    if cfg.snapshot_path:
        path = Path(cfg.snapshot_path)
        if path.exists():
            return SnapshotEntityStore.from_file(path)
    return SnapshotEntityStore()


def _dispatch(args: argparse.Namespace, cfg: AppConfig, store: EntityStore, logger: Any) -> int:
    if args.command == "clients":
        return _run_clients(args, cfg, store, logger)
    if args.command == "invoices":
        return _run_invoices(args, cfg, store, logger)
    return _run_audit(store, logger)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when no list was given (an empty list is a valid argv)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    file_arg = getattr(args, "file", None)
    if file_arg is not None and not file_arg.exists():
        logger.error(f"file not found: {file_arg}")
        return EXIT_FATAL

    conn = None
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
    else:
        conn = _open_connection(cfg)

    try:
        if conn is None:
            logger.info("mode=mock")
            return _dispatch(args, cfg, _snapshot_store(cfg), logger)
        with _db_cursor(conn) as cur:
            store = PostgresEntityStore(
                cur,
                clients=cfg.tables.clients,
                invoices=cfg.tables.invoices,
                owners=cfg.tables.owners,
            )
            logger.info("mode=live")
            return _dispatch(args, cfg, store, logger)
    except (SheetHeaderError, UnsupportedSourceError, ValueError) as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
