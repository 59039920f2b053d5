# src/epost_parcel/pipelines/cancellation.py
from __future__ import annotations

from typing import Optional
import logging

from epost_parcel.api.orders import ParcelOrders
from epost_parcel.api.xml_response import NO_RESERVATION_CODE
from epost_parcel.errors import (
    CannotCancelError,
    CarrierApiError,
    ConfigurationError,
    InvalidCustomerNumberError,
    ShipmentNotFoundError,
)
from epost_parcel.io.store import ShipmentRepository
from epost_parcel.models import CancelOrderResponse, CancelRequest, CancelResult, Leg, ShipmentStatus

# Carrier wording for "there is no such application to cancel".
_NO_RESERVATION_PHRASES = (
    "신청정보가 없",
    "신청 정보가 없",
    "신청내역이 없",
    "no reservation",
)
_CANCELLED_ANSWERS = ("Y", "D")


def is_no_reservation(err: CarrierApiError) -> bool:
    if isinstance(err, InvalidCustomerNumberError):
        return False
    if err.code == NO_RESERVATION_CODE:
        return True
    message = (err.message or "").lower()
    return any(p in message for p in _NO_RESERVATION_PHRASES)


class Canceller:
    """Cancel a pickup that has not been collected yet.

    The carrier call replays the identifiers saved at booking time; the record
    only changes after the carrier confirmed (or had nothing left to cancel).
    """

    def __init__(
        self,
        repository: ShipmentRepository,
        orders: Optional[ParcelOrders] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repository = repository
        self.orders = orders
        self.logger = logger or logging.getLogger("epost_parcel.pipelines.cancellation")

    def _call_carrier(self, record, delete_after_cancel: bool) -> tuple[Optional[CancelOrderResponse], bool]:
        """Returns (carrier answer, soft_success)."""
        ctx = record.context_for(Leg.PICKUP)
        if ctx is None:
            raise CannotCancelError(
                f"order {record.order_id} has no booking identifiers to replay; cancel it with the carrier directly"
            )

        if ctx.mock:
            self.logger.info("Order %s was booked by the mock; skipping carrier cancel", record.order_id)
            return None, True

        if self.orders is None:
            raise ConfigurationError("carrier credentials are required to cancel a real booking")

        try:
            answer = self.orders.cancel_order(
                appr_no=ctx.approval_no,
                req_type=ctx.req_type,
                pay_type=ctx.pay_type,
                req_no=ctx.request_id,
                res_no=ctx.reservation_id,
                regi_no=record.pickup_tracking_no or "",
                req_ymd=ctx.req_ymd,
                delete=delete_after_cancel,
            )
        except CarrierApiError as ex:
            if is_no_reservation(ex):
                self.logger.warning(
                    "Carrier has no reservation for order %s (%s); treating as cancelled",
                    record.order_id,
                    ex,
                )
                return None, True
            raise

        if answer.canceled_yn not in _CANCELLED_ANSWERS:
            raise CarrierApiError(
                "NOT_CANCELLED",
                answer.not_cancel_reason or f"carrier did not cancel (canceledYn={answer.canceled_yn})",
            )
        return answer, False

    def cancel(self, order_id: str, delete_after_cancel: bool = False) -> CancelResult:
        record = self.repository.get(order_id)
        if record is None:
            raise ShipmentNotFoundError(f"no shipment for order {order_id}")

        if record.status is ShipmentStatus.CANCELLED:
            raise CannotCancelError(f"order {order_id} is already cancelled")
        if not record.status.is_before(ShipmentStatus.PICKED_UP):
            raise CannotCancelError(
                f"order {order_id} is {record.status.value}; a collected parcel can't be cancelled"
            )

        answer, soft = self._call_carrier(record, delete_after_cancel)

        if delete_after_cancel:
            deleted = self.repository.delete(order_id)
        else:
            record.status = ShipmentStatus.CANCELLED
            record.pickup_tracking_no = None
            self.repository.save(record)
            deleted = False

        self.logger.info(
            "Cancelled order %s (deleted=%s soft=%s canceledYn=%s)",
            order_id,
            deleted,
            soft,
            answer.canceled_yn if answer else "-",
        )
        return CancelResult(
            order_id=order_id,
            cancelled=True,
            deleted=deleted,
            soft_success=soft,
            carrier_result=answer,
        )

    def handle(self, request: CancelRequest) -> CancelResult:
        return self.cancel(request.order_id, delete_after_cancel=request.delete_after_cancel)
