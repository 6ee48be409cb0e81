from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.fields import MappingTarget, parse_target

"""Configuration loader.

Responsibilities:
- load the YAML config (config/import.yml by default)
- validate it against the packaged JSON schema (config_schema.json)
- apply defaults for everything optional
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "TablesConfig",
    "InvoiceColumns",
    "ReaderConfig",
    "AppConfig",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection fallback; DATABASE_URL / PGDSN / PG* environment variables win."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TablesConfig:
    clients: str = "clients"
    invoices: str = "invoices"
    owners: str = "users"


@dataclass(frozen=True)
class InvoiceColumns:
    """Header labels of the billing upload."""
    number: str = "invoice_number"
    owner: str = "owner_id"
    date: str = "date"
    amount: str = "amount"

    def missing_from(self, headers: list[str]) -> list[str]:
        present = set(headers)
        return [h for h in (self.number, self.owner, self.date, self.amount) if h not in present]


@dataclass(frozen=True)
class ReaderConfig:
    header_row: int = 0  # 0-based row holding the headers
    sheet: str | None = None  # None = first sheet
    keep_na_strings: list[str] | None = None  # keep e.g. "NA" as text
    null_sentinels: set[str] | None = None  # upper-cased strings read as empty


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    tables: TablesConfig = field(default_factory=TablesConfig)
    invoice_columns: InvoiceColumns = field(default_factory=InvoiceColumns)
    client_mapping: dict[str, MappingTarget] = field(default_factory=dict)
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    snapshot_path: str | None = None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Raise ConfigError when the schema is unreadable or the data violates it."""
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _parse_client_mapping(raw: dict[str, str]) -> dict[str, MappingTarget]:
    presets: dict[str, MappingTarget] = {}
    for header, target in raw.items():
        try:
            presets[header] = parse_target(target)
        except ValueError as e:
            raise ConfigError(f"client_mapping '{header}': {e}") from e
    return presets


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    tables = TablesConfig(**data.get("tables", {}))
    columns = InvoiceColumns(**data.get("invoice_columns", {}))

    reader_raw = data.get("reader", {})
    sentinels = reader_raw.get("null_sentinels")
    reader = ReaderConfig(
        header_row=reader_raw.get("header_row", 0),
        sheet=reader_raw.get("sheet"),
        keep_na_strings=reader_raw.get("keep_na_strings"),
        null_sentinels={s.strip().upper() for s in sentinels} if sentinels else None,
    )

    return AppConfig(
        database=db,
        tables=tables,
        invoice_columns=columns,
        client_mapping=_parse_client_mapping(data.get("client_mapping", {})),
        reader=reader,
        snapshot_path=data.get("snapshot_path"),
    )
