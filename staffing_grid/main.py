from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .io_utils import ensure_directory, load_config, load_seed, write_csv
from .materializer import materialize, utilization_summary
from .models import Filter, Forest, GridConfig
from .report import allocation_frame, mirror_discrepancies, rows_frame
from .store import ResourceTreeStore


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Staffing grid batch tool (seed JSON in, materialized grid CSV out)."
    )
    parser.add_argument(
        "--project-dir",
        help="Portfolio directory containing input/ and output/ subfolders",
    )
    parser.add_argument("--seed", help="Path to seed JSON (overrides project-dir default)")
    parser.add_argument("--config", help="Path to configuration JSON file (overrides project-dir default)")
    parser.add_argument("--view", choices=("people", "projects"), default="people")
    parser.add_argument("--time-range", choices=("3M", "6M", "9M"), default="9M")
    parser.add_argument("--group-by", default="none", help="none, department, manager or dealfolder")
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="KEY=V1,V2",
        help="Filter roots by status, department, manager, name, skills or utilization",
    )
    parser.add_argument(
        "--expand",
        action="append",
        default=[],
        metavar="ID",
        help="Expand a row id (repeatable; use 'all' to expand every root)",
    )
    parser.add_argument(
        "--outdir",
        default=None,
        help="Output directory for generated CSV files (default: <project-dir>/output or ./out)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Fail if the People and Projects forests disagree on any assignment",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the grid summary without writing output CSV files",
    )
    return parser.parse_args(argv)


def _resolve_io_paths(args: argparse.Namespace) -> Tuple[Path, Path, Path]:
    project_dir = Path(args.project_dir).resolve() if args.project_dir else None
    if project_dir and not project_dir.exists():
        raise ValueError(f"project directory not found: {project_dir}")
    input_dir = project_dir / "input" if project_dir else None

    def _pick(path_value: Optional[str], default_name: str) -> Optional[Path]:
        if path_value:
            return Path(path_value)
        if input_dir:
            return input_dir / default_name
        return None

    seed_path = _pick(args.seed, "seed.json")
    config_path = _pick(args.config, "config.json")

    missing = [name for name, value in (("seed", seed_path), ("config", config_path)) if value is None]
    if missing:
        joined = ", ".join(f"--{name}" for name in missing)
        raise ValueError(f"missing required input paths: {joined} (or provide --project-dir)")

    for label, path in (("seed", seed_path), ("config", config_path)):
        if not path.exists():
            raise ValueError(f"{label} file not found at {path}")

    if args.outdir:
        outdir = Path(args.outdir)
    elif project_dir:
        outdir = project_dir / "output"
    else:
        outdir = Path("out")

    return seed_path, config_path, outdir


def parse_filters(raw_filters: Sequence[str]) -> List[Filter]:
    merged: Dict[str, List[str]] = {}
    for raw in raw_filters:
        key, sep, values = raw.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"filter must look like KEY=V1,V2: '{raw}'")
        parsed = [value.strip() for value in values.split(",") if value.strip()]
        merged.setdefault(key.strip().lower(), []).extend(parsed)
    return [Filter(key=key, values=tuple(values)) for key, values in merged.items()]


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _expanded_map(store: ResourceTreeStore, view: Forest, ids: Sequence[str]) -> Dict[str, bool]:
    if "all" in ids:
        return {root.id: True for root in store.forest(view)}
    return {node_id: True for node_id in ids}


def _print_summary(store: ResourceTreeStore, view: Forest, months: Sequence[str], config: GridConfig, rows) -> None:
    summary = utilization_summary(store.forest(view), months, config)
    print(f"{view.capitalize()} view, {len(months)} months ({months[0]} → {months[-1]}):")
    for row in rows:
        if row.kind == "action":
            continue
        indent = "  " * row.depth
        print(f"{indent}- {row.node.name} [{row.node.id}] {row.node.subtext}".rstrip())
    print()
    for bucket, members in summary.items():
        names = ", ".join(member.name for member in members) or "none"
        print(f"{bucket}: {len(members)} ({names})")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        seed_path, config_path, outdir = _resolve_io_paths(args)
        cfg = load_config(config_path)
        _configure_logging(cfg.logging_level)
        store = load_seed(seed_path, cfg)
        filters = parse_filters(args.filter)
        months = cfg.visible_months(args.time_range)
        rows = materialize(
            store.forest(args.view),
            filters,
            args.group_by,
            months,
            view=args.view,
            config=cfg,
            expanded=_expanded_map(store, args.view, args.expand),
            dealfolders=store.dealfolders,
        )
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)

    if args.check:
        discrepancies = mirror_discrepancies(store)
        if not discrepancies.empty:
            print("People and Projects forests disagree:", file=sys.stderr)
            print(discrepancies.to_string(index=False), file=sys.stderr)
            sys.exit(1)
        print("Mirror check passed.")

    if args.dry_run:
        _print_summary(store, args.view, months, cfg, rows)
        return

    outdir_path = ensure_directory(outdir)
    grid_path = outdir_path / f"grid_{args.view}.csv"
    allocations_path = outdir_path / "allocations.csv"
    write_csv(rows_frame(rows, months), grid_path)
    write_csv(allocation_frame(store.people, "people"), allocations_path)
    print(f"Wrote {grid_path}")
    print(f"Wrote {allocations_path}")


if __name__ == "__main__":
    main()
