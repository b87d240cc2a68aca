# backend/app/cli/__main__.py
from __future__ import annotations

import argparse
import json

from app.cli.seed_demo import seed_demo
from app.db import init_db
from app.logging_config import configure_logging
from app.workers.sync_tasks import run_all_syncs, run_subscription_sync


def _cmd_seed_demo(args: argparse.Namespace) -> int:
    out = seed_demo(
        user_email=args.user_email,
        user_name=args.user_name,
        plan_code=args.plan_code,
        create_sample_property=(not args.no_sample_property),
    )
    print(
        {
            "ok": True,
            "user_email": out.user_email,
            "plan_code": out.plan_code,
            "sample_property_id": out.property_id,
        }
    )
    return 0


def _cmd_sync(args: argparse.Namespace) -> int:
    """Entry point for the external scheduler (cron, systemd timer, ...)."""
    if args.subscription_id is not None:
        results = [run_subscription_sync(args.subscription_id)]
    else:
        results = run_all_syncs()
    print(json.dumps(results, default=str))
    # non-zero so schedulers can alert on failed cycles
    return 1 if any(r["status"] == "error" for r in results) else 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    print({"ok": True})
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    p.add_argument("--log-level", default=None, help="overrides LOG_LEVEL")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="create a demo user, property and bookings")
    s.add_argument("--user-email", default="owner@demo.local")
    s.add_argument("--user-name", default="Demo Owner")
    s.add_argument("--plan-code", default="free", choices=["free", "premium"])
    s.add_argument("--no-sample-property", action="store_true")
    s.set_defaults(func=_cmd_seed_demo)

    s = sub.add_parser("sync", help="run one iCal import cycle")
    s.add_argument("--subscription-id", type=int, default=None)
    s.set_defaults(func=_cmd_sync)

    s = sub.add_parser("init-db", help="create tables for a local database")
    s.set_defaults(func=_cmd_init_db)

    args = p.parse_args(argv)
    configure_logging(args.log_level)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
