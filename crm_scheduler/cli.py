"""Command-line interface for the workforce scheduler."""

from __future__ import annotations

import argparse
from pathlib import Path

from crm_scheduler.config import SchedulerConfig, configure_logging, load_config
from crm_scheduler.domain.bootstrap import bootstrap_defaults
from crm_scheduler.domain.db import get_session_factory, init_database
from crm_scheduler.engine.auto_assign import AutoAssigner
from crm_scheduler.errors import SchedulingError
from crm_scheduler.io.export_matrix import export_planner_matrix
from crm_scheduler.io.import_csv import import_orgs_csv, import_workers_csv, import_workplaces_csv
from crm_scheduler.io.planner_matrix import MODES
from crm_scheduler.services.notifier import DatabaseNotifier
from crm_scheduler.timerange import parse_datetime


def _db_url(args: argparse.Namespace, cfg: SchedulerConfig) -> str:
    return args.db or cfg.database_url


def _cmd_init_db(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Initialize the database."""
    db_url = _db_url(args, cfg)
    init_database(db_url)
    print(f"[OK] Database initialized: {db_url}")


def _cmd_bootstrap(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Create the default org and system administrator."""
    session = get_session_factory(_db_url(args, cfg))()
    try:
        org, admin = bootstrap_defaults(session, cfg.bootstrap)
        print(f"[OK] Default org '{org.slug}', administrator {admin.email}")
    finally:
        session.close()


def _cmd_import_csv(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Import CSV data into database."""
    session = get_session_factory(_db_url(args, cfg))()

    try:
        # Orgs first: workplaces and workers reference them by slug
        if args.orgs:
            count = import_orgs_csv(session, args.orgs)
            print(f"[OK] Imported {count} orgs")

        if args.workplaces:
            count = import_workplaces_csv(session, args.workplaces)
            print(f"[OK] Imported {count} workplaces")

        if args.workers:
            count = import_workers_csv(session, args.workers)
            print(f"[OK] Imported {count} workers")

        print("[OK] CSV import complete")

    except Exception as e:
        print(f"[ERROR] Import failed: {e}")
        raise
    finally:
        session.close()


def _cmd_auto_assign(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Auto-assign a team for one range of a plan."""
    factory = get_session_factory(_db_url(args, cfg))
    session = factory()

    try:
        assigner = AutoAssigner(session, notifier=DatabaseNotifier(factory), cfg=cfg)
        slots = assigner.auto_assign(
            plan_id=args.plan,
            org_id=args.org,
            date_start=parse_datetime(args.date_start),
            date_end=parse_datetime(args.date_end),
            team_size=args.team_size,
            respect_constraints=not args.ignore_constraints,
        )
        print(f"[OK] Assigned {len(slots)} workers to plan {args.plan}")

    except SchedulingError as e:
        print(f"[ERROR] Auto-assign failed: {e} {e.to_dict()}")
        raise
    finally:
        session.close()


def _cmd_export_matrix(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Export the planner matrix to XLSX or CSV."""
    session = get_session_factory(_db_url(args, cfg))()

    try:
        fmt = args.format or Path(args.out).suffix.lstrip(".").lower() or cfg.export.format
        data = export_planner_matrix(
            session,
            parse_datetime(args.date_from),
            parse_datetime(args.date_to),
            args.mode,
            cfg=cfg.export,
            fmt=fmt,
            user_id=args.user,
            org_id=args.org,
        )
        Path(args.out).write_bytes(data)
        print(f"[OK] Exported planner matrix to {args.out}")

    except Exception as e:
        print(f"[ERROR] Export failed: {e}")
        raise
    finally:
        session.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-scheduler",
        description="Workforce scheduling: assignments, plans and auto-assignment",
    )

    # Global options
    parser.add_argument("--db", help="Database URL (default: from config, sqlite:///crm_scheduler.db)")
    parser.add_argument("--config", help="Path to config YAML or JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Initialize database")
    init.set_defaults(func=_cmd_init_db)

    boot = sub.add_parser("bootstrap", help="Create default org and administrator")
    boot.set_defaults(func=_cmd_bootstrap)

    imp = sub.add_parser("import-csv", help="Import CSV data into database")
    imp.add_argument("--orgs", help="Path to orgs CSV (name, slug)")
    imp.add_argument("--workplaces", help="Path to workplaces CSV (org_slug, code, name, ...)")
    imp.add_argument("--workers", help="Path to workers CSV (email, full_name, position, role, org_slug)")
    imp.set_defaults(func=_cmd_import_csv)

    auto = sub.add_parser("auto-assign", help="Pick a team for a plan range")
    auto.add_argument("--plan", required=True, help="Plan id")
    auto.add_argument("--org", required=True, help="Org id")
    auto.add_argument("--from", dest="date_start", required=True, help="Range start (ISO-8601)")
    auto.add_argument("--to", dest="date_end", required=True, help="Range end (ISO-8601)")
    auto.add_argument("--team-size", type=int, required=True, help="Number of workers to pick")
    auto.add_argument("--ignore-constraints", action="store_true", help="Skip blacklist/availability/weekly limits")
    auto.set_defaults(func=_cmd_auto_assign)

    exp = sub.add_parser("export-matrix", help="Export planner matrix")
    exp.add_argument("--from", dest="date_from", required=True, help="Range start (ISO-8601)")
    exp.add_argument("--to", dest="date_to", required=True, help="Range end (ISO-8601)")
    exp.add_argument("--mode", choices=MODES, default=MODES[0], help="Row grouping")
    exp.add_argument("--format", choices=("xlsx", "csv"), help="Output format (default: from --out suffix)")
    exp.add_argument("--user", help="Only this worker")
    exp.add_argument("--org", help="Only this org")
    exp.add_argument("--out", required=True, help="Output file")
    exp.set_defaults(func=_cmd_export_matrix)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)
    configure_logging(cfg.log_level)
    args.func(args, cfg)


if __name__ == "__main__":
    main()
