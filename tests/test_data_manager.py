"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import BASE_MOMENT, make_product
from stock_ledger import constants, data_manager
from stock_ledger.constants import DiscountType, StorageKey
from stock_ledger.models import Sale, Settings


def _sale() -> Sale:
    return Sale(
        id="s-1",
        date=BASE_MOMENT,
        product_id="p-widget",
        product="Widget",
        quantity=3,
        unit_price=Decimal("5.00"),
        subtotal=Decimal("15.00"),
        discount_type=DiscountType.FLAT,
        discount_value=Decimal("1.00"),
        discount_applied=Decimal("1.00"),
        total=Decimal("14.00"),
    )


def _state() -> data_manager.LedgerState:
    return data_manager.LedgerState(
        products=[make_product(7, name="Widget", price="5.00", min_stock=0)],
        sales=[_sale()],
        settings=Settings(default_min_stock=3, currency="USD", notifications=False),
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery should walk upward from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataDir=data\nSchemaVersion=2.0\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)
    assert parser.get("System", "SchemaVersion") == constants.EXPECTED_SCHEMA_VERSION
    assert parser.getboolean("Ledger", "AutoSave") is True


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataDir entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True, enforce_unique=True, autosave=False)
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_dir == bundle.data_dir.resolve()
    assert settings.enforce_unique_on_rename is True
    assert settings.autosave is False


def test_parse_settings_defaults_optional_ledger_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(f"[System]\nDataDir={tmp_path}\nSchemaVersion=2.0\n")

    settings = data_manager.parse_settings(parser)

    assert settings.data_dir == tmp_path
    assert settings.enforce_unique_on_rename is False
    assert settings.autosave is True


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


# ---------------------------------------------------------------------------
# Blob stores
# ---------------------------------------------------------------------------


def test_json_file_store_round_trip(tmp_path):
    store = data_manager.JsonFileStore(tmp_path / "data")

    assert store.load("missing") is None
    store.save("inventory", "[1, 2]")

    assert store.path_for("inventory") == (tmp_path / "data" / "inventory.json").resolve()
    assert store.load("inventory") == "[1, 2]"
    assert not list((tmp_path / "data").glob("*.tmp"))


def test_json_file_store_overwrites_existing_blob(tmp_path):
    store = data_manager.JsonFileStore(tmp_path)
    store.save("k", "old")
    store.save("k", "new")
    assert store.load("k") == "new"


def test_memory_store_copies_seed_blobs():
    seed = {"k": "v"}
    store = data_manager.MemoryStore(seed)
    store.save("k", "changed")
    assert seed == {"k": "v"}
    assert store.load("k") == "changed"


# ---------------------------------------------------------------------------
# State codec
# ---------------------------------------------------------------------------


def test_save_and_load_state_round_trip():
    store = data_manager.MemoryStore()
    state = _state()

    data_manager.save_state(store, state)
    loaded = data_manager.load_state(store)

    assert loaded.products == state.products
    assert loaded.sales == state.sales
    assert loaded.settings == state.settings


def test_saved_blobs_use_browser_field_names():
    store = data_manager.MemoryStore()
    data_manager.save_state(store, _state())

    product = json.loads(store.blobs[StorageKey.INVENTORY.value])[0]
    sale = json.loads(store.blobs[StorageKey.SALES.value])[0]
    settings = json.loads(store.blobs[StorageKey.SETTINGS.value])

    assert product["qty"] == 7
    assert product["price"] == 5.0
    assert product["minStock"] == 0
    assert sale["productId"] == "p-widget"
    assert sale["discountType"] == "flat"
    assert sale["discountApplied"] == 1.0
    assert settings == {"defaultMinStock": 3, "currency": "USD", "notifications": False}


def test_load_state_defaults_when_store_is_empty():
    state = data_manager.load_state(data_manager.MemoryStore())
    assert state.products == []
    assert state.sales == []
    assert state.settings == Settings()


def test_load_state_degrades_each_blob_independently():
    """A corrupt blob falls back to its default without touching the others."""

    good = data_manager.MemoryStore()
    data_manager.save_state(good, _state())
    blobs = dict(good.blobs)
    blobs[StorageKey.SALES.value] = "{not json"
    blobs[StorageKey.SETTINGS.value] = json.dumps({"defaultMinStock": 0})

    state = data_manager.load_state(data_manager.MemoryStore(blobs))

    assert [product.name for product in state.products] == ["Widget"]
    assert state.sales == []
    assert state.settings == Settings()


def test_load_state_rejects_wrongly_shaped_inventory():
    store = data_manager.MemoryStore({StorageKey.INVENTORY.value: json.dumps({"id": "x"})})
    assert data_manager.load_state(store).products == []


def test_load_state_degrades_on_undecodable_bytes(tmp_path):
    """A blob that is not UTF-8 text reads as missing."""

    store = data_manager.JsonFileStore(tmp_path)
    data_manager.save_state(store, _state())
    store.path_for(StorageKey.INVENTORY.value).write_bytes(b"\xff\xfe\xfa[]")

    state = data_manager.load_state(store)

    assert state.products == []
    assert [sale.id for sale in state.sales] == ["s-1"]
    assert state.settings.currency == "USD"


@pytest.mark.parametrize(
    "overrides",
    [{"price": 1e30}, {"qty": -5}, {"qty": 1.5}, {"price": -2}, {"minStock": -1}],
)
def test_load_state_degrades_on_out_of_range_products(overrides):
    good = data_manager.MemoryStore()
    data_manager.save_state(good, _state())
    inventory = json.loads(good.blobs[StorageKey.INVENTORY.value])
    inventory[0].update(overrides)
    blobs = dict(good.blobs)
    blobs[StorageKey.INVENTORY.value] = json.dumps(inventory)

    state = data_manager.load_state(data_manager.MemoryStore(blobs))

    assert state.products == []
    assert [sale.id for sale in state.sales] == ["s-1"]
    assert state.settings.default_min_stock == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"qty": 0},
        {"qty": -1},
        {"total": -10},
        {"subtotal": 10, "discountApplied": 12},
    ],
)
def test_decode_sales_rejects_out_of_range_records(overrides):
    raw = {
        "id": "s-bad",
        "date": "2026-10-14T05:00:00.000Z",
        "product": "Widget",
        "qty": 4,
        "price": 2.5,
        "total": 10,
    }
    raw.update(overrides)

    with pytest.raises(ValueError):
        data_manager.decode_sales([raw])


def test_decode_products_reads_offset_less_timestamps_as_local():
    raw = {
        "id": "p-1",
        "name": "Widget",
        "qty": 1,
        "price": 1,
        "createdAt": "2026-10-14T10:30:00",
    }

    (product,) = data_manager.decode_products([raw])

    assert product.created_at.tzinfo is not None
    assert product.created_at.replace(tzinfo=None) == datetime(2026, 10, 14, 10, 30)


def test_decode_sales_recomputes_missing_subtotal():
    raw = {
        "id": "s-legacy",
        "date": "2026-10-14T05:00:00.000Z",
        "product": "Widget",
        "qty": 4,
        "price": 2.5,
        "total": 10,
    }

    (sale,) = data_manager.decode_sales([raw])

    assert sale.subtotal == Decimal("10.00")
    assert sale.discount_type is DiscountType.FLAT
    assert sale.discount_applied == Decimal("0.00")
    assert sale.product_id == ""
    assert sale.date.utcoffset().total_seconds() == 0


def test_decode_blob_reads_fractions_as_decimal():
    assert data_manager.decode_blob('{"price": 9.99}') == {"price": Decimal("9.99")}


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


def test_backup_payload_layout():
    payload = data_manager.build_backup_payload(_state(), timestamp=BASE_MOMENT)

    assert set(payload) == {"inventory", "salesHistory", "settings", "timestamp", "version"}
    assert payload["version"] == constants.EXPECTED_SCHEMA_VERSION
    assert payload["timestamp"] == "2026-10-14T10:30:00+05:30"


def test_backup_file_round_trip(tmp_path):
    state = _state()
    payload = data_manager.build_backup_payload(state, timestamp=BASE_MOMENT)

    written = data_manager.write_backup(payload, tmp_path / "backups" / "backup.json")
    restored = data_manager.parse_backup_payload(data_manager.read_backup(written), base_settings=Settings())

    assert restored.products == state.products
    assert restored.sales == state.sales
    assert restored.settings == state.settings


def test_parse_backup_merges_partial_settings():
    base = Settings(default_min_stock=9, currency="EUR", notifications=True)
    payload = {"inventory": [], "salesHistory": [], "settings": {"currency": "USD"}}

    restored = data_manager.parse_backup_payload(payload, base_settings=base)

    assert restored.settings == Settings(default_min_stock=9, currency="USD", notifications=True)


@pytest.mark.parametrize(
    "payload",
    [
        {"salesHistory": []},
        {"inventory": [], "salesHistory": None},
    ],
)
def test_parse_backup_requires_inventory_and_sales(payload):
    with pytest.raises(KeyError):
        data_manager.parse_backup_payload(payload, base_settings=Settings())


def test_read_backup_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_backup(tmp_path / "absent.json")

    not_an_object = tmp_path / "list.json"
    not_an_object.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        data_manager.read_backup(not_an_object)
