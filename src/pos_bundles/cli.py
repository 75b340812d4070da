"""Command-line interface for pos-bundles.

Examples:
    $ pos-bundles import exports/ventes-janvier.xlsx --output janvier.json
    $ pos-bundles merge exports/ventes-janvier.xlsx --month 2025-01
    $ pos-bundles stats --json
    $ pos-bundles compositions search vasque
    $ pos-bundles restore backups/ventes-cumulatives-2025-02-01.json
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from pos_bundles.api import PosBundles
from pos_bundles.classify.unclassified import summary as unclassified_summary
from pos_bundles.compositions.naming import fix_names
from pos_bundles.config import Settings
from pos_bundles.exceptions import PosBundlesError
from pos_bundles.fusion.merge import MergeResult, build_metadata
from pos_bundles.reconcile.resolver import NameResolver, ResolverRules
from pos_bundles.types import CumulativeDataset

logger = logging.getLogger(__name__)


def _dump(document: Any, output: str | None) -> None:
    text = json.dumps(document, indent=2, ensure_ascii=False, default=str)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        print(f"Output: {path}")
    else:
        print(text)


def _print_merge(result: MergeResult) -> None:
    print(result.message)
    if not result.success:
        return
    print(f"Existing lines: {result.existing_count}")
    print(f"Incoming lines: {result.incoming_count}")
    print(f"Merged lines:   {result.merged_count}")
    if result.duplicates_eliminated:
        print(f"Duplicates eliminated: {result.duplicates_eliminated}")
    if result.period_start:
        print(f"Period: {result.period_start} -> {result.period_end}")
    for name in result.saved_files:
        print(f"Saved: {name}")


# ----------------------------------------------------------------- commands


def cmd_import(app: PosBundles, args: argparse.Namespace) -> int:
    result = app.import_sales(
        args.path,
        sheet=args.sheet,
        money_in_cents=args.cents,
        assign_missing_ids=args.assign_ids,
    )
    print(f"Lines read:       {len(result.original)}")
    if result.mapping is not None and result.mapping.skipped:
        print(f"Lines skipped:    {result.mapping.skipped}")
    print(f"Components added: {result.components_added}")
    print(f"Lines out:        {len(result.lines)}")
    if result.decomposition is not None and result.decomposition.unresolved:
        print("Unresolved components: " + ", ".join(result.decomposition.unresolved))
    if args.output:
        dataset = CumulativeDataset(result.lines, build_metadata(result.lines))
        _dump(dataset.to_dict(), args.output)
    return 0


def cmd_merge(app: PosBundles, args: argparse.Namespace) -> int:
    batch = app.import_sales(args.path, sheet=args.sheet, assign_missing_ids=args.assign_ids)
    session = app.merge_session(args.month)
    report = session.detect(batch.lines, eliminate_duplicates=args.eliminate_duplicates)
    if session.result is None:
        if not args.eliminate_duplicates:
            print(f"{report.total} internal duplicates kept (use --eliminate-duplicates to skip them)")
        session.confirm(eliminate_duplicates=args.eliminate_duplicates)
    result = session.result
    _print_merge(result)
    return 0 if result.success else 1


def cmd_stats(app: PosBundles, args: argparse.Namespace) -> int:
    stats = app.statistics()
    if args.json:
        _dump(stats.to_dict(), args.output)
        return 0
    totals = stats.totals
    print(f"Lines:    {totals['lines']} ({totals['sales_lines']} sales)")
    print(f"Revenue:  {totals['revenue']:.2f}")
    print(f"Products: {totals['distinct_products']}")
    if totals["period_start"]:
        print(f"Period:   {totals['period_start']} -> {totals['period_end']}")
    print()
    print(stats.top_products.to_string(index=False))
    return 0


def cmd_restore(app: PosBundles, args: argparse.Namespace) -> int:
    result = app.restore(args.path)
    _print_merge(result)
    return 0 if result.success else 1


def cmd_compositions(app: PosBundles, args: argparse.Namespace) -> int:
    registry = app.registry
    if args.action == "list":
        for comp in registry:
            print(f"{comp.id}\t{comp.type}\t{comp.name}")
        print(f"{len(registry)} compositions")
    elif args.action == "search":
        matches = registry.search(args.text or "")
        for comp in matches:
            print(f"{comp.id}\t{comp.type}\t{comp.name}")
        print(f"{len(matches)} matches")
    elif args.action == "export":
        _dump(registry.export(), args.output)
    elif args.action == "fix-names":
        print(f"Renamed {fix_names(registry)} compositions")
    return 0


def cmd_unclassified(app: PosBundles, args: argparse.Namespace) -> int:
    products = app.unclassified()
    if args.json:
        _dump(
            {
                "summary": unclassified_summary(products),
                "products": [p.to_dict() for p in products],
            },
            args.output,
        )
        return 0
    for p in products:
        print(f"{p.name}\t{p.occurrences}\t{p.amount:.2f}\t{p.suggested_category}\t{p.proposed_id}")
    print(f"{len(products)} unclassified products")
    return 0


COMMANDS = {
    "import": cmd_import,
    "merge": cmd_merge,
    "stats": cmd_stats,
    "restore": cmd_restore,
    "compositions": cmd_compositions,
    "unclassified": cmd_unclassified,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pos-bundles",
        description="Decompose POS bundle sales and merge monthly batches.",
    )
    parser.add_argument(
        "--data-root",
        type=str,
        default=None,
        help="Root directory for store, reference and exports (default: $POS_BUNDLES_DATA_ROOT or ./data)",
    )
    parser.add_argument(
        "--rules",
        type=str,
        default=None,
        help="JSON file with name resolution rules.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import and decompose a sales export.")
    p.add_argument("path", help="xlsx, xls, csv or json sales file")
    p.add_argument("--sheet", default=None, help="Workbook sheet name")
    p.add_argument("--cents", action="store_true", help="Money columns are in cents")
    p.add_argument("--assign-ids", action="store_true", help="Keep rows without an id")
    p.add_argument("--output", default=None, help="Write the decomposed lines to this file")

    p = sub.add_parser("merge", help="Import a sales export and merge it into the dataset.")
    p.add_argument("path")
    p.add_argument("--sheet", default=None)
    p.add_argument("--month", default=None, help="YYYY-MM of the month export")
    p.add_argument("--assign-ids", action="store_true")
    p.add_argument("--eliminate-duplicates", action="store_true")

    p = sub.add_parser("stats", help="Statistics over the cumulative dataset.")
    p.add_argument("--json", action="store_true")
    p.add_argument("--output", default=None)

    p = sub.add_parser("restore", help="Replace the dataset with a JSON backup.")
    p.add_argument("path")

    p = sub.add_parser("compositions", help="Inspect the composition registry.")
    p.add_argument("action", choices=["list", "search", "export", "fix-names"])
    p.add_argument("text", nargs="?", default=None, help="Search text")
    p.add_argument("--output", default=None)

    p = sub.add_parser("unclassified", help="Products sold without a catalog id.")
    p.add_argument("--json", action="store_true")
    p.add_argument("--output", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the ``pos-bundles`` command.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 when interrupted.
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        environ = dict(os.environ)
        if args.data_root:
            environ["POS_BUNDLES_DATA_ROOT"] = args.data_root
        settings = Settings.from_env(environ)
        resolver = NameResolver(ResolverRules.from_file(args.rules)) if args.rules else None
        app = PosBundles.from_settings(settings, resolver=resolver)
        return COMMANDS[args.command](app, args)
    except (PosBundlesError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
