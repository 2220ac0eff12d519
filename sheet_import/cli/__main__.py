from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from sheet_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from sheet_import.db.client import check_connection, open_client, resolve_dsn
from sheet_import.excel.reader import SheetData, SheetHeaderError, SheetNotFoundError, list_sheets, read_sheet
from sheet_import.logging.error_log import ErrorLogBuffer
from sheet_import.logging.init import log_summary, setup_logging
from sheet_import.models.job_settings import JobConfigurationError
from sheet_import.models.processing_result import JobResult
from sheet_import.services.mapping import MappingError, check_mapping, merge_mapping, suggest_mapping
from sheet_import.services.orchestrator import ImportJob
from sheet_import.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (override) and the YAML config
- Read one sheet, build the effective column mapping (explicit + auto-map)
- --dry-run: validate only / otherwise validate and load in per-batch transactions
- Print SUMMARY (and the JSON result with --json)

Exit codes: 0 = clean success, 2 = completed with errors, 1 = fatal / strict abort
"""

EXIT_SUCCESS = 0
EXIT_COMPLETED_WITH_ERRORS = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きし、PostgreSQL 接続情報を最優先化。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sheet-import", description="Spreadsheet -> PostgreSQL table importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--file", type=Path, default=None, help="Source .xlsx (overrides source_file)")
    p.add_argument("--sheet", default=None, help="Sheet name (overrides sheet; default first sheet)")
    p.add_argument("--dry-run", action="store_true", help="Validate only, do not write")
    p.add_argument("--json", action="store_true", help="Print the job result as JSON")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers, mapping & first rows then exit")
    p.add_argument("--test-connection", action="store_true", help="Check the database connection then exit")
    return p.parse_args(argv)


def _effective_mapping(cfg: ImportConfig, headers: list[str]) -> dict[str, str | None]:
    if cfg.auto_map:
        return merge_mapping(cfg.column_mapping, suggest_mapping(headers))
    return dict(cfg.column_mapping)


def _jsonable(value: Any) -> Any:
    # datetime 含む場合 JSON 化失敗するため isoformat へ
    return value.isoformat() if hasattr(value, "isoformat") else value


def _inspect_data(source: Path, data: SheetData, mapping: dict[str, str | None]) -> int:
    print(f"FILE: {source.name} sheets={list_sheets(source)}")
    print(f"SHEET: {data.sheet_name} rows={len(data.records)}")
    print(f"  headers={data.headers}")
    for column, header in mapping.items():
        print(f"  map {column} <- {header if header else '(unmapped)'}")
    for record in data.records[:INSPECT_SAMPLE_ROWS]:
        safe_row = {k: _jsonable(v) for k, v in record.items()}
        print("  sample_row=", json.dumps(safe_row, ensure_ascii=False, default=str))
    return EXIT_SUCCESS


def _test_connection(cfg: ImportConfig, logger: Any) -> int:
    ok, reason = check_connection(resolve_dsn(cfg.database))
    if ok:
        logger.info("connection: ok")
        return EXIT_SUCCESS
    logger.error(f"connection: {reason}")
    return EXIT_FATAL


def _exit_code(result: JobResult) -> int:
    if not result.success:
        return EXIT_FATAL
    if result.error_count > 0:
        return EXIT_COMPLETED_WITH_ERRORS
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    # None のときのみシステム引数を読む (テストで main([]) を呼ぶため)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.test_connection:
        return _test_connection(cfg, logger)

    source = args.file or (Path(cfg.source_file) if cfg.source_file else None)
    if source is None:
        logger.error("no source file: set source_file in the config or pass --file")
        return EXIT_FATAL
    if not source.exists():
        logger.error(f"source file not found: {source}")
        return EXIT_FATAL

    try:
        data = read_sheet(source, sheet_name=args.sheet or cfg.sheet, keep_na_strings=cfg.keep_na_strings)
    except (SheetNotFoundError, SheetHeaderError, OSError, ValueError) as e:
        logger.error(f"read: {e}")
        return EXIT_FATAL
    logger.info(f"Reading {source.name} sheet={data.sheet_name} rows={len(data.records)}")

    mapping = _effective_mapping(cfg, data.headers)
    try:
        unmapped_required = check_mapping(mapping, data.headers)
    except MappingError as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(source, data, mapping)

    if unmapped_required:
        logger.error(f"mapping: required columns are not mapped: {unmapped_required}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer()
    try:
        if args.dry_run:
            job = ImportJob(cfg.settings, mapping, error_log=error_log)
            result = job.dry_run(data.records)
        else:
            with open_client(resolve_dsn(cfg.database)) as client:
                job = ImportJob(cfg.settings, mapping, client=client, error_log=error_log)
                result = job.run(data.records)
    except JobConfigurationError as e:
        logger.error(f"settings: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))

    # log_summary が "SUMMARY " を付与するため先頭を除去
    summary_line = render_summary_line(result)
    log_summary(summary_line[len("SUMMARY "):])
    return _exit_code(result)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
