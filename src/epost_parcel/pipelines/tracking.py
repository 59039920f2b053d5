# src/epost_parcel/pipelines/tracking.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Optional
import logging

from epost_parcel.api.orders import ParcelOrders
from epost_parcel.api.scraper import ScrapeResult, TracePageScraper
from epost_parcel.errors import (
    CarrierApiError,
    MissingTrackingNumberError,
    ShipmentNotFoundError,
    UpstreamError,
)
from epost_parcel.io.store import ShipmentRepository
from epost_parcel.models import Leg, ResInfo, ShipmentRecord, ShipmentStatus, TrackingEvent
from epost_parcel.notifications import NotificationBridge, notice_for, safe_notify
from epost_parcel.rules.reconcile import Reconciliation, reconcile


@dataclass(frozen=True)
class PollOutcome:
    order_id: str
    tracking_no: str
    leg: Leg
    previous_status: ShipmentStatus
    status: ShipmentStatus
    stage: Optional[str] = None
    source: Optional[str] = None
    latest_event: Optional[TrackingEvent] = None
    scrape_error: Optional[str] = None
    api_error: Optional[str] = None

    @property
    def transitioned(self) -> bool:
        return self.status is not self.previous_status

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["leg"] = self.leg.value
        out["previous_status"] = self.previous_status.value
        out["status"] = self.status.value
        out["transitioned"] = self.transitioned
        out["latest_event"] = self.latest_event.to_dict() if self.latest_event else None
        return out


class TrackingReconciler:
    """Poll one tracking number and move the shipment forward when the carrier says so.

    Order of sources:
    - the public trace page (BeautifulSoup); failures are logged and treated as no data
    - GetResInfo, only when the page had no events; failures are logged and recorded
    The decision itself is rules.reconcile.reconcile (pure).
    """

    def __init__(
        self,
        repository: ShipmentRepository,
        scraper: Optional[TracePageScraper] = None,
        orders: Optional[ParcelOrders] = None,
        *,
        notifier: Optional[NotificationBridge] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repository = repository
        self.scraper = scraper or TracePageScraper()
        self.orders = orders
        self.notifier = notifier
        self.clock = clock
        self.logger = logger or logging.getLogger("epost_parcel.pipelines.tracking")

    # --- sources -------------------------------------------------------------------

    def _scrape(self, tracking_no: str) -> tuple[Optional[ScrapeResult], Optional[str]]:
        try:
            return self.scraper.fetch(tracking_no), None
        except UpstreamError as ex:
            self.logger.warning("Trace page unavailable for %s: %s", tracking_no, ex)
            return None, str(ex)

    def _res_info(self, record: ShipmentRecord, leg: Leg) -> tuple[Optional[ResInfo], Optional[str]]:
        ctx = record.context_for(leg)
        if ctx is None:
            self.logger.info("Order %s has no booking context for the %s leg", record.order_id, leg.value)
            return None, None
        if ctx.mock or self.orders is None:
            self.logger.debug("Skipping GetResInfo for order %s (mock=%s)", record.order_id, ctx.mock)
            return None, None
        try:
            info = self.orders.get_res_info(
                req_type=ctx.req_type,
                order_no=ctx.order_no or record.order_id,
                req_ymd=ctx.req_ymd,
            )
        except (UpstreamError, CarrierApiError) as ex:
            self.logger.warning("GetResInfo failed for order %s: %s", record.order_id, ex)
            return None, str(ex)
        return info, None

    # --- state change ----------------------------------------------------------------

    def _apply(self, record: ShipmentRecord, result: Reconciliation, now: datetime) -> None:
        record.status = result.new_status
        for event in result.events:
            record.append_event(event)
        for attr in result.timestamp_fields:
            record.mark_once(attr, now)
        self.repository.save(record)

        notice = notice_for(result.new_status)
        if notice is not None:
            type_, title, body = notice
            safe_notify(
                self.notifier,
                self.logger,
                user_id=record.user_id,
                type=type_,
                title=title,
                body=body,
                order_id=record.order_id,
            )

    def _poll(self, record: ShipmentRecord, leg: Leg, tracking_no: str) -> PollOutcome:
        previous = record.status
        if previous.is_terminal:
            self.logger.debug("Order %s is %s; nothing to poll", record.order_id, previous.value)
            return PollOutcome(record.order_id, tracking_no, leg, previous, previous)

        scrape, scrape_error = self._scrape(tracking_no)
        api, api_error = None, None
        if scrape is None or not scrape.events:
            api, api_error = self._res_info(record, leg)

        now = self.clock()
        result = reconcile(previous, leg, scrape, api, now)
        if result.transitioned:
            self._apply(record, result, now)
            self.logger.info(
                "Order %s %s leg: %s -> %s (stage %s from %s)",
                record.order_id,
                leg.value,
                previous.value,
                record.status.value,
                result.stage,
                result.source,
            )
        else:
            self.logger.debug(
                "Order %s %s leg unchanged at %s (stage %s)",
                record.order_id,
                leg.value,
                previous.value,
                result.stage,
            )

        return PollOutcome(
            order_id=record.order_id,
            tracking_no=tracking_no,
            leg=leg,
            previous_status=previous,
            status=record.status,
            stage=result.stage,
            source=result.source,
            latest_event=scrape.latest if scrape is not None else None,
            scrape_error=scrape_error,
            api_error=api_error,
        )

    # --- public entry points ---------------------------------------------------------

    def poll(self, tracking_no: str) -> PollOutcome:
        record = self.repository.find_by_tracking_no(tracking_no)
        if record is None:
            raise ShipmentNotFoundError(f"no shipment with tracking number {tracking_no}")
        leg = record.leg_of(tracking_no)
        return self._poll(record, leg, tracking_no)

    def poll_order(self, order_id: str) -> PollOutcome:
        record = self.repository.get(order_id)
        if record is None:
            raise ShipmentNotFoundError(f"no shipment for order {order_id}")
        leg, tracking_no = record.active_leg()
        if leg is None or tracking_no is None:
            raise MissingTrackingNumberError(f"order {order_id} has no tracking number to poll")
        return self._poll(record, leg, tracking_no)
