"""CLI for InstallFlow: create tables, sweep offers, check capacity."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys


async def cmd_init_db(args):
    from installflow.db.engine import create_all

    await create_all()
    print("Tables created.")


async def cmd_sweep_offers(args):
    from installflow.config import get_settings
    from installflow.db.engine import async_session_factory
    from installflow.services.notifications import build_router
    from installflow.services.offers import OfferManager

    settings = get_settings()
    manager = OfferManager(settings, build_router(settings.notifications))
    async with async_session_factory() as db:
        expired = await manager.expire_stale_offers(db)
    print(f"Expired {len(expired)} offer(s)")
    for offer_id in expired:
        print(f"  {offer_id}")


async def cmd_check_capacity(args):
    from installflow.config import get_settings
    from installflow.db.engine import async_session_factory
    from installflow.errors import SchedulingError
    from installflow.services import capacity

    settings = get_settings()
    async with async_session_factory() as db:
        try:
            result = await capacity.preflight(
                db, args.order_id, args.engineer_id, args.date, settings=settings.scheduling,
            )
        except SchedulingError as e:
            print(f"Error: {e.message}")
            sys.exit(1)
    print(json.dumps(result.to_dict(), indent=2, default=str))
    if not result.can_fit:
        sys.exit(2)


def main():
    parser = argparse.ArgumentParser(description="InstallFlow CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("sweep-offers", help="Expire pending offers past their deadline")

    cc = subparsers.add_parser("check-capacity", help="Check whether an order fits an engineer-day")
    cc.add_argument("--order-id", required=True, help="Order id")
    cc.add_argument("--engineer-id", required=True, help="Engineer id")
    cc.add_argument("--date", required=True, help="Candidate date (YYYY-MM-DD)")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if args.command == "init-db":
        asyncio.run(cmd_init_db(args))
    elif args.command == "sweep-offers":
        asyncio.run(cmd_sweep_offers(args))
    elif args.command == "check-capacity":
        asyncio.run(cmd_check_capacity(args))


if __name__ == "__main__":
    main()
