"""Shared pytest fixtures and utilities for reseller ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from reseller_ledger import cli, constants, core_logic, data_manager, transactions  # noqa: E402
from reseller_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Ledger]\n"
    "UndoDepth = {undo_depth}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    business_name: str
    undo_depth: int


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "ledger_workbook.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Supplies",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        undo_depth: int = constants.DEFAULT_UNDO_DEPTH,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                business_name=business_name,
                schema_version=schema_version,
                undo_depth=undo_depth,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            business_name=business_name,
            undo_depth=undo_depth,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Seeded ledger fixtures
# ---------------------------------------------------------------------------


BAR_TIERS = (
    data_manager.PriceRange(min_quantity=1, max_quantity=9, price=Decimal("10.00")),
    data_manager.PriceRange(min_quantity=10, max_quantity=None, price=Decimal("8.00")),
)


@pytest.fixture
def ledger(runtime_context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Runtime context holding two resellers and two products.

    ``R1``/``R2`` start with a zero balance. ``P1`` ("Protein Bar") costs 10.00
    for 1-9 units and 8.00 from 10 units; ``P2`` ("Vitamin C") is sold at its
    MRP of 25.00.
    """

    core_logic.add_reseller(runtime_context, reseller_id="R1", reseller_name="Alice Traders", email="alice@example.com")
    core_logic.add_reseller(runtime_context, reseller_id="R2", reseller_name="Bob Stores")
    core_logic.add_product(
        runtime_context,
        product_id="P1",
        product_name="Protein Bar",
        mrp=Decimal("12.00"),
        price_ranges=BAR_TIERS,
    )
    core_logic.add_product(runtime_context, product_id="P2", product_name="Vitamin C", mrp=Decimal("25.00"))
    return runtime_context


@pytest.fixture
def make_sale(ledger: core_logic.RuntimeContext) -> Callable[..., data_manager.SaleRow]:
    """Record a sale on the seeded ledger with sensible defaults."""

    def _make_sale(
        *,
        reseller_id: str = "R1",
        product_id: str = "P2",
        quantity: int = 1,
        paid: Decimal = Decimal("0"),
        price: Decimal | None = None,
        when: date | None = None,
    ) -> data_manager.SaleRow:
        command = transactions.SaleCommand(
            reseller_id=reseller_id,
            product_id=product_id,
            quantity=quantity,
            paid=paid,
            price=price,
            date=when,
        )
        return transactions.record_sale(ledger, command)

    return _make_sale


def balance_of(context: core_logic.RuntimeContext, reseller_id: str) -> Decimal:
    """Read a reseller balance straight from the workbook."""

    return data_manager.find_reseller(context.workbook, reseller_id).due_balance


def stored(context: core_logic.RuntimeContext, transaction_id: str) -> data_manager.TransactionRow | None:
    """Read a transaction straight from the workbook."""

    return data_manager.find_transaction(context.workbook, transaction_id)


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="ledger-cli", description="Ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "ledger_workbook.xlsx",
        business_name="Test Supplies",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
