"""CLI entry point for the affiliate rollup engine.

Orchestrates the full pipeline: transaction ingestion, arsenal loading,
aggregation, sorting/pagination, and QA validation.

Usage::

    # Affiliate rollup, top 25 by revenue
    python -m src.cli report \\
        --transactions data/transactions.csv \\
        --group-by affiliate

    # Product groups from the active arsenal, exported to CSV
    python -m src.cli report \\
        --transactions data/transactions.xlsx \\
        --arsenal config/arsenals.yaml \\
        --group-by group --sort profit --page 2 \\
        --output output/groups.csv

    # Show how each product name is classified
    python -m src.cli classify \\
        --arsenal config/arsenals.yaml \\
        --transactions data/transactions.csv

    # Inspect and validate an arsenal file
    python -m src.cli inspect --arsenal config/arsenals.yaml --detail

    # Check page/grand total consistency and determinism
    python -m src.cli validate \\
        --transactions data/transactions.csv --group-by offer
"""

import argparse
import logging
import sys
from pathlib import Path

from src.processor.ingestion import ingest_transactions
from src.processor.paginate import COLUMNS, SORT_ASC, SORT_DESC
from src.processor.report import GroupBy, RollupEngine, RollupReport
from src.qa.validator import ConsistencyValidator, validate_arsenal
from src.schema.design_system import format_value, refund_rate_severity
from src.schema.loader import FileArsenalStore, load_engine_config, select_active


DEFAULT_COLUMNS = [
    "label", "sales_count", "total_revenue", "gross_sales", "commission_paid",
    "net_sales", "refunds_and_chargebacks_cost", "net", "cogs", "profit",
    "cash_flow", "refund_rate",
]


# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------

def _build_engine(args) -> RollupEngine:
    """Build a RollupEngine from CLI args (--arsenal / --config)."""
    config_path = getattr(args, "config", None)
    if config_path and not Path(config_path).exists():
        _error(f"Config file not found: {config_path}")
    try:
        config = load_engine_config(config_path)
    except ValueError as exc:
        _error(str(exc))

    arsenal_path = getattr(args, "arsenal", None)
    store = None
    if arsenal_path:
        store = FileArsenalStore(arsenal_path, user_id=getattr(args, "user", None))
        if not store.path.exists():
            _warn(f"Arsenal file not found: {store.path}; using system arsenals")
    return RollupEngine(store, config=config)


def _load_records(args):
    """Ingest the --transactions file."""
    path = Path(args.transactions)
    if not path.exists():
        _error(f"Transactions file not found: {path}")
    _info(f"Ingesting transactions from {path}")
    try:
        records = ingest_transactions(path)
    except ValueError as exc:
        _error(str(exc))
    _info(f"Loaded {len(records):,} transaction(s)")
    return records


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_report(args):
    """Aggregate transactions and print one page of the rollup."""
    engine = _build_engine(args)
    records = _load_records(args)

    try:
        report = engine.compute(
            records,
            group_by=args.group_by,
            sort_column=args.sort,
            sort_direction=args.direction,
            page=args.page,
            page_size=args.page_size,
            search=args.search,
        )
    except (KeyError, ValueError) as exc:
        _error(str(exc).strip("'\""))

    for w in report.warnings:
        _warn(w)

    columns = args.columns.split(",") if args.columns else DEFAULT_COLUMNS
    unknown = [c for c in columns if c not in COLUMNS]
    if unknown:
        _error(f"Unknown column(s): {', '.join(unknown)}")

    print(render_table(report, columns, engine))

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        frame = report.to_frame()
        if output.suffix.lower() in (".xlsx", ".xlsm"):
            frame.to_excel(output, index=False, engine="openpyxl")
        else:
            frame.to_csv(output, index=False)
        _info(f"Written: {output} ({len(frame):,} row(s))")

    if args.check:
        validator = ConsistencyValidator(engine)
        qa_result = validator.validate(records, group_by=args.group_by,
                                       sort_column=args.sort,
                                       sort_direction=args.direction,
                                       page_size=args.page_size)
        if qa_result.passed:
            _info(qa_result.summary())
        else:
            _warn(qa_result.summary())
            print(qa_result.report(), file=sys.stderr)
            sys.exit(1)


def cmd_classify(args):
    """Show the group/offer each product name resolves to."""
    engine = _build_engine(args)
    records = _load_records(args)
    try:
        arsenal = engine.load_arsenal()
    except ValueError as exc:
        _error(str(exc))
    _info(f"Arsenal: {arsenal.name if arsenal else '(none)'}")

    classifications = engine.classify_snapshot(records, arsenal)
    for name, c in classifications.items():
        offer = f" / {c.offer_label}" if c.offer_label else ""
        print(f"  {name!r:50} -> {c.group_label}{offer} ({c.kind.value})")


def cmd_inspect(args):
    """Show arsenal structure and configuration issues."""
    store = FileArsenalStore(args.arsenal, user_id=args.user)
    try:
        arsenals, active_id = store.load_all()
    except ValueError as exc:
        _error(str(exc))
    active = select_active(arsenals, active_id)

    exit_code = 0
    for arsenal in arsenals:
        marker = "*" if active is not None and arsenal.id == active.id else " "
        system = " (system)" if arsenal.is_default else ""
        print(f"{marker} {arsenal.id}: {arsenal.name}{system}")
        print(f"    groups: {len(arsenal.custom_groups)}"
              f"  auto-group: {arsenal.config.auto_group_ungrouped}"
              f"  individual: {arsenal.config.show_individual_products}")
        if args.detail:
            for group in arsenal.active_groups():
                rules = ", ".join(repr(r.value) for r in group.match_rules)
                print(f"    [{group.order:2d}] {group.name} <- {rules}")
                for offer in sorted(group.offers, key=lambda o: o.order):
                    offer_rules = ", ".join(repr(r.value) for r in offer.match_rules)
                    print(f"         {offer.offer_type.value:10} {offer.name}"
                          f" <- {offer_rules}")
        qa_result = validate_arsenal(arsenal)
        if qa_result.issues:
            print(f"    {qa_result.report()}".replace("\n", "\n    "))
        if not qa_result.passed:
            exit_code = 1

    if active_id is None:
        _info("No active arsenal stored; the default arsenal is used")
    sys.exit(exit_code)


def cmd_validate(args):
    """Run rollup QA checks and exit non-zero on failure."""
    engine = _build_engine(args)
    records = _load_records(args)
    validator = ConsistencyValidator(engine)
    try:
        qa_result = validator.validate(records, group_by=args.group_by,
                                       sort_column=args.sort,
                                       page_size=args.page_size)
    except (KeyError, ValueError) as exc:
        _error(str(exc).strip("'\""))
    print(qa_result.report())
    sys.exit(0 if qa_result.passed else 1)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _cell(bucket, column: str, engine: RollupEngine) -> str:
    value = format_value(getattr(bucket, column), COLUMNS[column].format_type)
    if column == "refund_rate" and bucket.key not in ("page_total", "grand_total"):
        severity = refund_rate_severity(bucket.refund_rate, engine.config)
        value = f"{value} ({severity.value})"
    return value


def render_table(report: RollupReport, columns: list[str],
                 engine: RollupEngine) -> str:
    """Plain-text table of the current page with page and grand totals."""
    page = report.page
    headers = [COLUMNS[c].header for c in columns]
    body = [[_cell(b, c, engine) for c in columns] for b in page.rows]
    footers = [
        [_cell(total, c, engine) if COLUMNS[c].is_numeric else total.label
         for c in columns]
        for total in (page.page_total, page.grand_total)
    ]
    widths = [
        max(len(row[i]) for row in [headers, *body, *footers])
        for i in range(len(columns))
    ]

    def line(cells):
        return "  ".join(
            cell.ljust(w) if not COLUMNS[c].is_numeric else cell.rjust(w)
            for cell, w, c in zip(cells, widths, columns)
        )

    rule = "  ".join("-" * w for w in widths)
    lines = [
        f"{report.group_by.value} rollup, page {page.page}/{page.total_pages} "
        f"({page.total_rows:,} row(s), sorted by {page.sort_column} {page.sort_direction})",
        line(headers),
        rule,
        *(line(r) for r in body),
        rule,
        *(line(f) for f in footers),
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _info(msg):
    print(f"  {msg}", file=sys.stderr)


def _warn(msg):
    print(f"  WARNING: {msg}", file=sys.stderr)


def _error(msg):
    print(f"  ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="affiliate-rollup",
        description="Roll affiliate transactions up into financial reports.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- report ----
    rep = subparsers.add_parser(
        "report",
        help="Print one page of a rollup report.",
    )
    _add_engine_args(rep)
    _add_rollup_args(rep)
    rep.add_argument(
        "--page",
        type=int,
        default=1,
        help="1-based page number (default: 1).",
    )
    rep.add_argument(
        "--direction",
        choices=[SORT_ASC, SORT_DESC],
        default=SORT_DESC,
        help="Sort direction (default: desc).",
    )
    rep.add_argument(
        "--search",
        help="Only rows whose key, name or platform contains this text.",
    )
    rep.add_argument(
        "--columns",
        help="Comma-separated columns to print.",
    )
    rep.add_argument(
        "-o", "--output",
        help="Also write the page to a .csv or .xlsx file.",
    )
    rep.add_argument(
        "--check",
        action="store_true",
        default=False,
        help="Run QA consistency checks after the report.",
    )
    rep.set_defaults(func=cmd_report)

    # ---- classify ----
    cls = subparsers.add_parser(
        "classify",
        help="Show the group and offer each product resolves to.",
    )
    _add_engine_args(cls)
    cls.set_defaults(func=cmd_classify)

    # ---- inspect ----
    insp = subparsers.add_parser(
        "inspect",
        help="Show arsenal structure and configuration issues.",
    )
    insp.add_argument(
        "--arsenal",
        required=True,
        help="Arsenal file (.yaml or .json).",
    )
    insp.add_argument(
        "--user",
        help="Only arsenals owned by this user.",
    )
    insp.add_argument(
        "--detail",
        action="store_true",
        default=False,
        help="Show groups, offers and rules.",
    )
    insp.set_defaults(func=cmd_inspect)

    # ---- validate ----
    val = subparsers.add_parser(
        "validate",
        help="Check page/grand total consistency and determinism.",
    )
    _add_engine_args(val)
    _add_rollup_args(val)
    val.set_defaults(func=cmd_validate)

    return parser


def _add_engine_args(parser):
    """Add --transactions / --arsenal / --config args to a subparser."""
    parser.add_argument(
        "--transactions",
        required=True,
        help="Transaction export (.csv, .tsv, .xlsx or .json).",
    )
    parser.add_argument(
        "--arsenal",
        help="Arsenal file (.yaml or .json) holding the active arsenal.",
    )
    parser.add_argument(
        "--user",
        help="Only arsenals owned by this user.",
    )
    parser.add_argument(
        "--config",
        help="Engine config (.yaml) overriding allowance rate and thresholds.",
    )


def _add_rollup_args(parser):
    """Add --group-by / --sort / --page-size args to a subparser."""
    parser.add_argument(
        "--group-by",
        dest="group_by",
        choices=[g.value for g in GroupBy],
        default=GroupBy.AFFILIATE.value,
        help="Rollup dimension (default: affiliate).",
    )
    parser.add_argument(
        "--sort",
        default="total_revenue",
        help="Sort column (default: total_revenue).",
    )
    parser.add_argument(
        "--page-size",
        dest="page_size",
        type=int,
        default=None,
        help="Rows per page (default from config: 25).",
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format="%(levelname)s %(name)s: %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
