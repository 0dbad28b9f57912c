from __future__ import annotations

import argparse
import json

from storefront.api.utils import group_to_dict, page_to_dict, stats_to_dict
from storefront.core.config import get_settings
from storefront.core.logging import configure_logging
from storefront.demo import DEMO_MERCHANT_ID, seed_demo_merchant
from storefront.domain.orders.coordinator import OrderStatusCoordinator
from storefront.domain.orders.errors import OrderLifecycleError
from storefront.domain.orders.models import STATUSES
from storefront.domain.orders.queries import ALL_STATUSES, filter_by_status, find_group, load_order_groups, order_stats, paginate
from storefront.persistence.pg import init_db, session_scope
from storefront.persistence.store import SqlOrderStore


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Marketplace storefront CLI")
    top = parser.add_subparsers(dest="command", required=True)

    orders = top.add_parser("orders", help="Merchant order operations")
    orders.add_argument("--merchant", default=DEMO_MERCHANT_ID, help="Merchant id")
    orders_sub = orders.add_subparsers(dest="orders_command", required=True)

    list_cmd = orders_sub.add_parser("list", help="List order groups")
    list_cmd.add_argument("--status", choices=[ALL_STATUSES, *STATUSES], default=ALL_STATUSES)
    list_cmd.add_argument("--page", type=int, default=1)

    orders_sub.add_parser("stats", help="Revenue and counts per status")

    show = orders_sub.add_parser("show", help="Show one order group")
    show.add_argument("group_id")

    advance = orders_sub.add_parser("advance", help="Move an order group to a new status")
    advance.add_argument("group_id")
    advance.add_argument("status", choices=list(STATUSES))

    top.add_parser("serve", help="Run the HTTP API")

    demo = top.add_parser("demo", help="Demo data")
    demo_sub = demo.add_subparsers(dest="demo_command", required=True)
    demo_sub.add_parser("seed", help="Seed the demo merchant")

    return parser


def _run_orders(args: argparse.Namespace) -> int:
    init_db()
    with session_scope() as session:
        store = SqlOrderStore(session)
        if args.orders_command == "list":
            groups = filter_by_status(load_order_groups(store, args.merchant), args.status)
            page = paginate(groups, page=args.page, page_size=get_settings().orders_page_size, status_filter=args.status)
            _print(page_to_dict(page))
        elif args.orders_command == "stats":
            _print(stats_to_dict(order_stats(load_order_groups(store, args.merchant))))
        elif args.orders_command == "show":
            _print(group_to_dict(find_group(store, args.merchant, args.group_id), detail=True))
        elif args.orders_command == "advance":
            group = OrderStatusCoordinator(store).advance(args.merchant, args.group_id, args.status)
            _print(group_to_dict(group, detail=True))
    return 0


def _run_demo_seed() -> int:
    init_db()
    with session_scope() as session:
        _print(seed_demo_merchant(session))
    return 0


def _run_serve() -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run("storefront.main:app", host=settings.api_host, port=settings.api_port)
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()

    try:
        if args.command == "orders":
            return _run_orders(args)
        if args.command == "serve":
            return _run_serve()
        if args.command == "demo" and args.demo_command == "seed":
            return _run_demo_seed()
    except OrderLifecycleError as exc:
        _print({"error": type(exc).__name__, "detail": str(exc)})
        return 1

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
