# src/epost_parcel/cli.py
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .config.env import get_app_env, load_settings, try_resolve_credentials
from .config.logging_config import get_logger
from .errors import (
    CarrierApiError,
    ConfigurationError,
    InvalidParameterError,
    ShipmentStateError,
    UpstreamError,
)
from .io.paths import derive_output_paths, resolve_store_path
from .io.store import JsonFileShipmentRepository
from .models import BookingRequest, CancelRequest
from .notifications import LoggingNotificationBridge

EXIT_OK = 0
EXIT_UPSTREAM = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="epost-parcel",
        description="Book, cancel and track contract parcels with the postal carrier.",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: LOG_LEVEL env, else INFO",
    )
    p.add_argument(
        "--no-console",
        action="store_true",
        help="Disable console logging (file logging remains).",
    )
    p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    p.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Shipment store (JSON file or directory). Default: ./shipments.json",
    )
    p.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Explicit .env file. Default: nearest .env upward from the working directory.",
    )

    sub = p.add_subparsers(dest="command", required=True)

    book = sub.add_parser("book", help="Book a pickup from a JSON booking request.")
    book.add_argument("request", type=Path, help="Path to the booking request JSON.")

    deliv = sub.add_parser("book-delivery", help="Book the outbound delivery leg of an order.")
    deliv.add_argument("order_id")
    deliv.add_argument("request", type=Path, help="Path to the booking request JSON.")

    cancel = sub.add_parser("cancel", help="Cancel a pickup that has not been collected.")
    cancel.add_argument("order_id")
    cancel.add_argument("--delete", action="store_true", help="Delete the shipment after cancelling.")

    track = sub.add_parser("track", help="Poll one shipment and apply any status change.")
    track.add_argument("tracking_no", nargs="?", default=None)
    track.add_argument("--order", dest="order_id", default=None, help="Poll the active leg of this order.")

    code = sub.add_parser("delivery-code", help="Look up the outbound sorting code for a postal code.")
    code.add_argument("zipcode")

    poll = sub.add_parser("poll-workbook", help="Poll every order listed in an .xlsx workbook.")
    poll.add_argument("input", type=Path, help="Workbook with 'Order ID' and/or 'Tracking Number'.")
    return p


def _read_request(path: Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise InvalidParameterError(f"{path} must hold a JSON object")
    return data


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _run(args: argparse.Namespace, logger) -> int:
    from .api.client import EPostClient
    from .api.orders import ParcelOrders
    from .api.scraper import TracePageScraper
    from .pipelines.booking import Booker
    from .pipelines.cancellation import Canceller
    from .pipelines.tracking import TrackingReconciler

    env_cfg = get_app_env(args.dotenv, strict=False)
    settings = load_settings(env_cfg)
    credentials = try_resolve_credentials(env_cfg)
    orders = ParcelOrders(EPostClient(credentials, settings)) if credentials else None

    store_path = resolve_store_path(args.store)
    repository = JsonFileShipmentRepository(store_path)
    notifier = LoggingNotificationBridge()
    logger.debug("Store: %s", store_path)

    def reconciler() -> TrackingReconciler:
        return TrackingReconciler(
            repository,
            TracePageScraper(settings.trace_url),
            orders,
            notifier=notifier,
        )

    if args.command in ("book", "book-delivery"):
        booker = Booker(repository, settings, credentials, orders=orders, notifier=notifier)
        body = _read_request(args.request)
        if args.command == "book":
            result = booker.book(BookingRequest.from_dict(body))
        else:
            body.setdefault("order_id", args.order_id)
            result = booker.book_delivery(args.order_id, BookingRequest.from_dict(body))
        _emit(result.to_dict())

    elif args.command == "cancel":
        request = CancelRequest(args.order_id, delete_after_cancel=args.delete)
        result = Canceller(repository, orders).handle(request)
        _emit(result.to_dict())

    elif args.command == "track":
        if bool(args.tracking_no) == bool(args.order_id):
            logger.error("track needs exactly one of <tracking_no> or --order")
            return EXIT_USAGE
        if args.order_id:
            outcome = reconciler().poll_order(args.order_id)
        else:
            outcome = reconciler().poll(args.tracking_no)
        _emit(outcome.to_dict())

    elif args.command == "delivery-code":
        from .api.delivery_code import DeliveryCodeLookup

        lookup = DeliveryCodeLookup.from_settings(settings)
        if lookup is None:
            raise ConfigurationError(
                "EPOST_DELIVERY_CODE_API_KEY is not set; the sorting-code lookup needs a portal key.",
                variable="EPOST_DELIVERY_CODE_API_KEY",
            )
        routing = lookup.lookup(args.zipcode)
        _emit(
            {
                "zipcode": args.zipcode,
                "found": routing is not None,
                "print_code": routing.print_code if routing else "",
                "routing": asdict(routing) if routing else None,
            }
        )

    elif args.command == "poll-workbook":
        from .pipelines.workbook_poller import WorkbookPoller

        processed_path, _ = derive_output_paths(args.input)
        summary = WorkbookPoller(reconciler(), logger).process(args.input, processed_path)
        _emit(summary)

    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    log_file = args.log_file
    if args.command == "poll-workbook":
        # Resolve derived paths (also validates input exists)
        try:
            _, workbook_log = derive_output_paths(args.input)
        except FileNotFoundError:
            print(f"error: input file not found: {args.input}", file=sys.stderr)
            return EXIT_USAGE
        log_file = log_file or workbook_log

    logger = get_logger(
        "epost_parcel",
        level=args.log_level,
        console=not args.no_console,
        log_file=log_file,
    )
    logger.debug("Logger initialized (command=%s).", args.command)

    try:
        code = _run(args, logger)
    except (ConfigurationError, InvalidParameterError, ShipmentStateError) as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_USAGE
    except (FileNotFoundError, ValueError, TypeError, KeyError) as e:
        logger.error("Bad input: %s", e)
        return EXIT_USAGE
    except (UpstreamError, CarrierApiError) as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_UPSTREAM
    except Exception as e:
        logger.exception("Unexpected failure: %s", e)
        return EXIT_UPSTREAM

    if code == EXIT_OK:
        logger.info("Done.")
    return code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
