"""Data access layer for Stock Ledger.

This module provides low-level helpers that read and write the ledger's
persistent state. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Blob storage: an opaque string store keyed by :class:`StorageKey`, backed
   by JSON files on disk or by memory.
3. State codec: turning the three top-level blobs (inventory, sale log,
   settings) into entity records and back, plus backup bundles.
"""


from __future__ import annotations

import configparser
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from . import log
from .constants import EXPECTED_SCHEMA_VERSION, StorageKey
from .models import (
    Product,
    Sale,
    Settings,
    product_from_dict,
    product_to_dict,
    sale_from_dict,
    sale_to_dict,
    settings_from_dict,
    settings_to_dict,
)


CONFIG_FILE_NAME = "config.ini"
BLOB_SUFFIX = ".json"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_dir: Path
    schema_version: str = EXPECTED_SCHEMA_VERSION
    enforce_unique_on_rename: bool = False
    autosave: bool = True


@dataclass
class LedgerState:
    """Decoded contents of the three top-level blobs."""

    products: List[Product] = field(default_factory=list)
    sales: List[Sale] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls where state is stored.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the working
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System] DataDir`` and ``[System] SchemaVersion`` are required. The
    ``[Ledger]`` section is optional and its flags default to
    ``EnforceUniqueOnRename = false`` and ``AutoSave = true``. A relative
    ``DataDir`` is anchored at ``base_path`` (or the working directory).

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If a boolean flag cannot be interpreted.
    """

    try:
        data_dir_raw = parser.get("System", "DataDir")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    enforce_unique = parser.getboolean("Ledger", "EnforceUniqueOnRename", fallback=False)
    autosave = parser.getboolean("Ledger", "AutoSave", fallback=True)

    data_dir = Path(data_dir_raw).expanduser()
    if not data_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_dir = (base_path / data_dir).resolve()

    return ConfigSettings(
        data_dir=data_dir,
        schema_version=schema_version,
        enforce_unique_on_rename=enforce_unique,
        autosave=autosave,
    )


class BlobStore(Protocol):
    """Opaque string storage keyed by name."""

    def load(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, blob: str) -> None:
        ...


class JsonFileStore:
    """Blob store that keeps one ``<key>.json`` file per key in a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser().resolve()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}{BLOB_SUFFIX}"

    def load(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write beside the target then swap, so a crash never leaves half a blob.
        staging = path.with_suffix(path.suffix + ".tmp")
        staging.write_text(blob, encoding="utf-8")
        os.replace(staging, path)


class MemoryStore:
    """Blob store held in a dictionary; handy for tests and scratch sessions."""

    def __init__(self, blobs: Optional[Mapping[str, str]] = None):
        self.blobs: Dict[str, str] = dict(blobs or {})

    def load(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def save(self, key: str, blob: str) -> None:
        self.blobs[key] = blob


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_blob(payload: Any) -> str:
    """Serialize ``payload`` to JSON, writing decimals as plain numbers."""

    return json.dumps(payload, default=_json_default, ensure_ascii=False)


def decode_blob(blob: str) -> Any:
    """Parse a JSON blob, reading fractional numbers as :class:`Decimal`."""

    return json.loads(blob, parse_float=Decimal)


def decode_products(payload: Any) -> List[Product]:
    if not isinstance(payload, list):
        raise TypeError("Inventory blob must be a list")
    return [product_from_dict(item) for item in payload]


def decode_sales(payload: Any) -> List[Sale]:
    if not isinstance(payload, list):
        raise TypeError("Sales blob must be a list")
    return [sale_from_dict(item) for item in payload]


def decode_settings(payload: Any, *, base: Optional[Settings] = None) -> Settings:
    if not isinstance(payload, Mapping):
        raise TypeError("Settings blob must be an object")
    return settings_from_dict(payload, base=base)


def _load_blob(store: BlobStore, key: StorageKey, decoder, default):
    """Load and decode a blob, degrading to ``default`` on any failure.

    A missing blob and a corrupt one are treated the same way: the caller
    receives the default and the incident is logged.
    """

    try:
        blob = store.load(key.value)
    except (OSError, UnicodeDecodeError) as exc:
        log.warning("Unable to read blob '%s': %s; using defaults", key.value, exc)
        return default()
    if blob is None:
        log.debug("Blob '%s' is absent; using defaults", key.value)
        return default()
    try:
        return decoder(decode_blob(blob))
    except (ValueError, KeyError, TypeError, ArithmeticError) as exc:
        log.warning("Discarding unreadable blob '%s': %s", key.value, exc)
        return default()


def load_state(store: BlobStore) -> LedgerState:
    """Read inventory, sale log, and settings from ``store``.

    Each blob degrades independently to its empty/default value when it is
    missing or cannot be decoded.
    """

    state = LedgerState(
        products=_load_blob(store, StorageKey.INVENTORY, decode_products, list),
        sales=_load_blob(store, StorageKey.SALES, decode_sales, list),
        settings=_load_blob(store, StorageKey.SETTINGS, decode_settings, Settings),
    )
    log.debug(
        "Loaded state with %d products and %d sales",
        len(state.products),
        len(state.sales),
    )
    return state


def save_state(store: BlobStore, state: LedgerState) -> None:
    """Write all three blobs to ``store``. Write failures propagate."""

    store.save(StorageKey.INVENTORY.value, encode_blob([product_to_dict(p) for p in state.products]))
    store.save(StorageKey.SALES.value, encode_blob([sale_to_dict(s) for s in state.sales]))
    store.save(StorageKey.SETTINGS.value, encode_blob(settings_to_dict(state.settings)))


def build_backup_payload(state: LedgerState, *, timestamp: datetime) -> Dict[str, Any]:
    """Assemble the backup bundle for ``state``."""

    return {
        "inventory": [product_to_dict(p) for p in state.products],
        "salesHistory": [sale_to_dict(s) for s in state.sales],
        "settings": settings_to_dict(state.settings),
        "timestamp": timestamp.isoformat(),
        "version": EXPECTED_SCHEMA_VERSION,
    }


def parse_backup_payload(payload: Mapping[str, Any], *, base_settings: Settings) -> LedgerState:
    """Decode a backup bundle into a :class:`LedgerState`.

    Settings in the bundle are merged over ``base_settings``; keys the bundle
    omits keep their current values.

    Raises:
        KeyError: If ``inventory`` or ``salesHistory`` is missing.
        ValueError, TypeError: If a record cannot be decoded.
    """

    for key in ("inventory", "salesHistory"):
        if payload.get(key) is None:
            raise KeyError(f"Backup is missing '{key}'")
    settings_raw = payload.get("settings") or {}
    return LedgerState(
        products=decode_products(payload["inventory"]),
        sales=decode_sales(payload["salesHistory"]),
        settings=decode_settings(settings_raw, base=base_settings),
    )


def write_backup(payload: Mapping[str, Any], destination: Union[str, Path]) -> Path:
    """Write a backup bundle as indented JSON and return the resolved path."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(
        json.dumps(payload, default=_json_default, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return dest


def read_backup(source: Union[str, Path]) -> Dict[str, Any]:
    """Read a backup bundle written by :func:`write_backup`.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        ValueError: If the file is not a JSON object.
    """

    path = Path(source).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Backup not found: {path}")
    payload = decode_blob(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Backup file must contain a JSON object")
    return payload
