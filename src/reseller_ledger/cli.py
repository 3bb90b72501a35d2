"""Command-line entry points for the reseller ledger.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or the interactive ``session`` command, which runs
many commands against one runtime context so undo and redo have a history to
work with.
"""

from __future__ import annotations

import argparse
import shlex
import sys
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, TextIO

from . import core_logic, data_manager, exchange, log, replay, transactions
from .constants import PaymentStatus, TransactionType


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def decimal_argument(text: str) -> Decimal:
    """``argparse`` type converting text into a :class:`Decimal`."""
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {text!r}") from exc


def date_argument(text: str) -> date:
    """``argparse`` type converting ``YYYY-MM-DD`` into a :class:`date`."""
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {text!r}") from exc


def price_range_argument(text: str) -> data_manager.PriceRange:
    """``argparse`` type for ``MIN:MAX:PRICE`` tiers; ``MAX`` may be empty."""
    parts = text.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"price range must look like MIN:MAX:PRICE, got {text!r}")
    min_raw, max_raw, price_raw = parts
    try:
        return data_manager.PriceRange(
            min_quantity=int(min_raw),
            max_quantity=int(max_raw) if max_raw else None,
            price=Decimal(price_raw),
        )
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"invalid price range: {text!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-cli",
        description="Command-line tools for the reseller ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    session_spec = register_session_command(subparsers)
    session_spec.register(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values(), session_spec])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and clearances."""
    specs = {
        "add-reseller": register_add_reseller_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "sale": register_sale_command(subparsers),
        "clear": register_clear_command(subparsers),
        "edit": register_edit_command(subparsers),
        "delete": register_delete_command(subparsers),
        "duplicate": register_duplicate_command(subparsers),
        "import": register_import_command(subparsers),
        "undo": register_undo_command(subparsers),
        "redo": register_redo_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "balances": register_balances_command(subparsers),
        "dues": register_dues_command(subparsers),
        "log": register_log_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--year", type=int, default=None)
    parser.add_argument("--month", type=int, default=None, help="Requires --year.")
    parser.add_argument("--reseller-id", default=None)
    parser.add_argument("--type", dest="transaction_type", choices=[member.value for member in TransactionType])
    parser.add_argument("--status", dest="payment_status", choices=[member.value for member in PaymentStatus])


def register_add_reseller_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-reseller``."""
    name = "add-reseller"
    help_text = "Register a new reseller in the Resellers sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--reseller-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--email", default=None)
        parser.add_argument("--balance", type=decimal_argument, default=Decimal("0"), help="Opening due balance.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_reseller)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product with its MRP and quantity price tiers."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--mrp", type=decimal_argument, default=None)
        parser.add_argument(
            "--price-range",
            dest="price_ranges",
            action="append",
            type=price_range_argument,
            default=[],
            help="Quantity tier as MIN:MAX:PRICE (leave MAX empty for open-ended). Repeatable.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale on a reseller's account."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--reseller-id", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.add_argument("--paid", type=decimal_argument, default=Decimal("0"))
        parser.add_argument("--price", type=decimal_argument, default=None, help="Override the tiered unit price.")
        parser.add_argument("--date", type=date_argument, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_clear_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clear``."""
    name = "clear"
    help_text = "Record a clearance payment against a reseller's dues."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--reseller-id", required=True)
        parser.add_argument("--amount", type=decimal_argument, required=True)
        parser.add_argument("--date", type=date_argument, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_clear)


def register_edit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit``."""
    name = "edit"
    help_text = "Change one field of a transaction."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("transaction_id")
        parser.add_argument("field", help="date, reseller_id, product_id, quantity, price or paid")
        parser.add_argument("value")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete one or more transactions."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("transaction_ids", nargs="+")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete)


def register_duplicate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``duplicate``."""
    name = "duplicate"
    help_text = "Clone sales as new unpaid sales dated today."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("transaction_ids", nargs="+")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_duplicate)


def register_import_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import``."""
    name = "import"
    help_text = "Import sales and clearances from an .xlsx file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("file", type=Path)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import)


def register_undo_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``undo``."""
    name = "undo"
    help_text = "Undo the last operation of this session."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_undo)


def register_redo_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``redo``."""
    name = "redo"
    help_text = "Redo the last undone operation of this session."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_redo)


def register_balances_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    name = "balances"
    help_text = "Display reseller due balances and flag drift from their sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balances_report)


def register_dues_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dues``."""
    name = "dues"
    help_text = "Display the sum of outstanding sales per reseller."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dues_report)


def register_log_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``log``."""
    name = "log"
    help_text = "Display transactions, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_filter_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_log_report)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export filtered transactions to an .xlsx file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        _add_filter_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


def register_session_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``session``."""
    name = "session"
    help_text = "Read commands line by line from stdin against one workbook session."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_session)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_reseller(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-reseller request."""
    return {
        "reseller_id": args.reseller_id,
        "reseller_name": args.name,
        "email": args.email,
        "due_balance": args.balance,
    }


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_id": args.product_id,
        "product_name": args.name,
        "mrp": args.mrp,
        "price_ranges": tuple(args.price_ranges),
    }


def translate_sale(args: argparse.Namespace) -> transactions.SaleCommand:
    """Translate CLI args into a sale command object."""
    return transactions.SaleCommand(
        reseller_id=args.reseller_id,
        product_id=args.product_id,
        quantity=args.quantity,
        paid=args.paid,
        price=args.price,
        date=args.date,
    )


def translate_clear(args: argparse.Namespace) -> transactions.ClearanceCommand:
    """Translate CLI args into a clearance command object."""
    return transactions.ClearanceCommand(reseller_id=args.reseller_id, paid=args.amount, date=args.date)


def translate_filters(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI filter flags into :func:`core_logic.filter_transactions` keywords."""
    return {
        "year": args.year,
        "month": args.month,
        "reseller_id": args.reseller_id,
        "transaction_type": TransactionType(args.transaction_type) if args.transaction_type else None,
        "payment_status": PaymentStatus(args.payment_status) if args.payment_status else None,
    }


def _print_transactions(records: Sequence[data_manager.TransactionRow], out: TextIO) -> None:
    for record in records:
        print(
            f"{record.transaction_id}  {record.date.isoformat()}  {record.transaction_type.value:<9}  "
            f"{record.reseller_id:<10}  {record.product_id or '-':<10}  qty={record.quantity:<4}  "
            f"total={record.total}  paid={record.paid}  outstanding={record.outstanding}  "
            f"[{record.payment_status.value}]",
            file=out,
        )


def run_add_reseller(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-reseller workflow in the BLL."""
    core_logic.add_reseller(context, **translate_add_reseller(args))
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    core_logic.add_product(context, **translate_add_product(args))
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    record = transactions.record_sale(context, translate_sale(args))
    print(f"Recorded sale {record.transaction_id}: total {record.total}, outstanding {record.outstanding}")
    return 0


def run_clear(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the clearance workflow via the BLL."""
    record = transactions.record_clearance(context, translate_clear(args))
    print(f"Recorded clearance {record.transaction_id} ({record.payment_status.value})")
    for allocation in record.allocations:
        print(f"  {allocation.sale_id}: {allocation.amount}")
    return 0


def run_edit(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a single-field edit via the BLL."""
    transactions.edit_transaction(context, args.transaction_id, args.field, args.value)
    return 0


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a bulk delete via the BLL."""
    records = transactions.delete_transactions(context, args.transaction_ids)
    print(f"Deleted {len(records)} transaction(s)")
    return 0


def run_duplicate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a bulk duplicate via the BLL."""
    result = transactions.duplicate_sales(context, args.transaction_ids)
    for clone in result.records:
        print(f"Created sale {clone.transaction_id}")
    for transaction_id in result.rejected:
        print(f"Skipped {transaction_id}: clearances cannot be duplicated")
    return 0


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Read an import file and insert its rows via the BLL."""
    rows = exchange.read_import_rows(args.file)
    result = transactions.import_transactions(context, rows)
    print(f"Imported {len(result.records)} transaction(s); skipped {len(result.skipped)} row(s)")
    for reason in result.skipped:
        print(f"  {reason}")
    return 0


def run_undo(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Undo the most recent operation of the current context."""
    operation = replay.undo_last(context)
    print(f"Undid {operation.kind.value}")
    return 0


def run_redo(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Redo the most recently undone operation of the current context."""
    operation = replay.redo_last(context)
    print(f"Redid {operation.kind.value}")
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the reseller balance report."""
    discrepancies = core_logic.find_balance_discrepancies(context)
    for reseller in core_logic.list_resellers(context):
        line = f"{reseller.reseller_id:<10}  {reseller.reseller_name:<24}  {reseller.due_balance}"
        if reseller.reseller_id in discrepancies:
            line += f"  (sales outstanding: {discrepancies[reseller.reseller_id][1]})"
        print(line)
    return 0


def run_dues_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the outstanding dues report."""
    for reseller_id, amount in core_logic.calculate_outstanding_dues(context).items():
        print(f"{reseller_id:<10}  {amount}")
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction log report."""
    _print_transactions(core_logic.filter_transactions(context, **translate_filters(args)), sys.stdout)
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Export filtered transactions to a spreadsheet."""
    records = core_logic.filter_transactions(context, **translate_filters(args))
    destination = exchange.export_workbook(context, records, args.output)
    print(f"Exported {len(records)} transaction(s) to {destination}")
    return 0


def run_session(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    stream: Optional[TextIO] = None,
) -> int:
    """Run commands read from ``stream`` (stdin by default) against ``context``.

    Each line is parsed like a ``ledger-cli`` command line without the global
    options. The workbook is saved after every successful command. Blank lines
    and lines starting with ``#`` are ignored; ``quit`` or ``exit`` ends the
    session.

    Returns:
        int: ``0`` when every command succeeded, otherwise the exit code of the
            last failed command.
    """
    stream = stream if stream is not None else sys.stdin
    parser = argparse.ArgumentParser(prog="", add_help=False)
    command_table = configure_subcommands(parser)

    status = 0
    for line in stream:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line in ("quit", "exit"):
            break
        try:
            line_args = parser.parse_args(shlex.split(line))
        except SystemExit:
            # argparse already printed the usage error
            status = 2
            continue
        if line_args.command == "session":
            log.error("A session cannot be nested")
            status = 2
            continue
        try:
            exit_code = dispatch_command(context, line_args, command_table)
            if exit_code == 0:
                persist_workbook(context)
        except Exception as error:
            exit_code = handle_cli_error(error)
        if exit_code != 0:
            status = exit_code
    return status


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, (core_logic.BusinessRuleViolation, ValueError)):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.PersistenceError):
        log.error("%s", error)
        for failure in error.reversal_failures:
            log.error("Reversal failed: %s", failure)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
