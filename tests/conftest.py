"""Shared pytest fixtures and utilities for Stock Ledger tests."""

from __future__ import annotations

import itertools
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stock_ledger import constants, core_logic, data_manager  # noqa: E402
from stock_ledger.models import Product  # noqa: E402

IST = timezone(timedelta(hours=5, minutes=30))
# A Wednesday; the enclosing Sunday-aligned week starts on 2026-10-11.
BASE_MOMENT = datetime(2026, 10, 14, 10, 30, tzinfo=IST)

_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataDir = {data_dir}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Ledger]\n"
    "EnforceUniqueOnRename = {enforce_unique}\n"
    "AutoSave = {autosave}\n"
)


class FakeClock:
    """Callable clock that stays put until told to move."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **delta: float) -> datetime:
        self.moment = self.moment + timedelta(**delta)
        return self.moment

    def set(self, moment: datetime) -> datetime:
        self.moment = moment
        return moment


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_dir: Path


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that writes ``config.ini`` files on demand."""

    def _create_config(
        *,
        make_relative: bool = True,
        schema_version: str = constants.EXPECTED_SCHEMA_VERSION,
        enforce_unique: bool = False,
        autosave: bool = True,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        data_dir = bundle_dir / "data"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_dir="data" if make_relative else str(data_dir),
                schema_version=schema_version,
                enforce_unique=str(enforce_unique).lower(),
                autosave=str(autosave).lower(),
            )
        )
        return ConfigBundle(directory=bundle_dir, config_path=config_path, data_dir=data_dir)

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(BASE_MOMENT)


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic identifiers: id-0001, id-0002, ..."""

    counter = itertools.count(1)
    return lambda: f"id-{next(counter):04d}"


@pytest.fixture
def store() -> data_manager.MemoryStore:
    return data_manager.MemoryStore()


@pytest.fixture
def context(store, clock, id_factory) -> core_logic.RuntimeContext:
    """Runtime context over an empty in-memory store."""

    return core_logic.build_context(store, clock=clock, id_factory=id_factory)


@pytest.fixture
def strict_context(store, clock, id_factory, tmp_path) -> core_logic.RuntimeContext:
    """Runtime context that re-checks name uniqueness on rename."""

    config = data_manager.ConfigSettings(data_dir=tmp_path, enforce_unique_on_rename=True)
    return core_logic.build_context(store, config=config, clock=clock, id_factory=id_factory)


@pytest.fixture
def widget(context) -> Product:
    """A product with ten units at 5.00 and a threshold of five."""

    return core_logic.create_product(
        context,
        name="Widget",
        category="Hardware",
        quantity=10,
        price=Decimal("5.00"),
        min_stock=5,
    )


def make_product(
    quantity: int,
    *,
    min_stock: Optional[int] = None,
    name: str = "Item",
    category: str = "Other",
    price: str = "1.00",
) -> Product:
    """Build a standalone product record for pure-function tests."""

    return Product(
        id=f"p-{name.lower()}",
        name=name,
        category=category,
        quantity=quantity,
        unit="pieces",
        price=Decimal(price),
        min_stock=min_stock,
        created_at=BASE_MOMENT,
        updated_at=BASE_MOMENT,
    )
