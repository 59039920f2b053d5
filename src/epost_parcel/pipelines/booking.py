# src/epost_parcel/pipelines/booking.py
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import math
import re

from epost_parcel.api.client import EPostClient
from epost_parcel.api.delivery_code import DeliveryCodeLookup
from epost_parcel.api.mock import mock_insert_order, should_use_mock
from epost_parcel.api.orders import ParcelOrders
from epost_parcel.errors import (
    AlreadyBookedError,
    InvalidParameterError,
    MissingTrackingNumberError,
    ParcelError,
    ShipmentNotFoundError,
    ShipmentStateError,
)
from epost_parcel.io.store import ShipmentRepository
from epost_parcel.models import (
    AddressSnapshot,
    BookingContext,
    BookingRequest,
    BookingResult,
    CarrierCredentials,
    CarrierSettings,
    DeliveryRouting,
    InsertOrderResponse,
    Party,
    ShipmentRecord,
    ShipmentStatus,
    TrackingEvent,
)
from epost_parcel.notifications import ORDER_BOOKED, NotificationBridge, safe_notify
from epost_parcel.rules.surcharge import is_island_destination

DEFAULT_WEIGHT_KG = 2
DEFAULT_VOLUME_CM = 60
DETAIL_PLACEHOLDER = "(상세주소 없음)"
MOCK_APPROVAL_NO = "MOCK"

_YES = {"y", "yes", "true", "1", "on"}
_NO = {"n", "no", "false", "0", "off"}
_ZIP = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class _Submission:
    response: InsertOrderResponse
    context: BookingContext
    fields: Dict[str, Any]
    recipient: Party
    sender: Party


def _digits_only(value: Optional[str]) -> str:
    return re.sub(r"[\s\-]", "", value or "")


class Booker:
    """Books pickups (customer -> center) and outbound deliveries (center -> customer).

    Nothing is persisted unless the carrier (or the guarded mock) returned a
    tracking number; validation failures never reach the network.
    """

    def __init__(
        self,
        repository: ShipmentRepository,
        settings: CarrierSettings,
        credentials: Optional[CarrierCredentials],
        *,
        orders: Optional[ParcelOrders] = None,
        delivery_codes: Optional[DeliveryCodeLookup] = None,
        notifier: Optional[NotificationBridge] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.credentials = credentials
        if orders is None and credentials is not None:
            orders = ParcelOrders(EPostClient(credentials, settings))
        self.orders = orders
        self.delivery_codes = delivery_codes or DeliveryCodeLookup.from_settings(settings)
        self.notifier = notifier
        self.clock = clock
        self.logger = logger or logging.getLogger("epost_parcel.pipelines.booking")

    # --- normalization -----------------------------------------------------------

    def _positive_int(self, value: Any, default: int, name: str, order_id: str) -> int:
        try:
            number = float(str(value).strip()) if value is not None else math.nan
        except ValueError:
            number = math.nan
        if not math.isfinite(number) or number <= 0:
            self.logger.warning(
                "Order %s: %s %r missing or invalid; using default %s", order_id, name, value, default
            )
            return default
        return max(1, math.floor(number))

    def _flag(self, value: Any, default: str, name: str, order_id: str) -> str:
        if value is None:
            return default
        if isinstance(value, bool):
            return "Y" if value else "N"
        text = str(value).strip().lower()
        if text in _YES:
            return "Y"
        if text in _NO:
            return "N"
        self.logger.warning("Order %s: %s %r is not a Y/N flag; using %s", order_id, name, value, default)
        return default

    def _detail(self, value: str, who: str, order_id: str) -> str:
        if value and value.strip():
            return value.strip()
        self.logger.warning("Order %s: %s detail address blank; using placeholder", order_id, who)
        return DETAIL_PLACEHOLDER

    def _normalize_party(self, party: Party, who: str, order_id: str, problems: List[str]) -> Party:
        zipcode = _digits_only(party.postal_code)
        if who == "recipient":
            if not zipcode:
                problems.append("recipient.postal_code (required)")
            elif not _ZIP.match(zipcode):
                problems.append(f"recipient.postal_code={party.postal_code!r} (expected 5 digits)")
        phone = _digits_only(party.phone)
        mobile = _digits_only(party.mobile)
        if who == "recipient" and not (phone or mobile):
            problems.append("recipient.phone (phone or mobile required)")
        if not (party.name or "").strip():
            problems.append(f"{who}.name (required)")
        return Party(
            name=(party.name or "").strip(),
            postal_code=zipcode,
            address=(party.address or "").strip(),
            detail=self._detail(party.detail, who, order_id),
            phone=phone,
            mobile=mobile,
            company=(party.company or "").strip(),
        )

    def build_fields(self, request: BookingRequest, approval_no: str = "") -> Tuple[Dict[str, Any], Party, Party]:
        """InsertOrder fields in wire order: ord* is the sender, rec* the recipient."""
        oid = request.order_id
        problems: List[str] = []
        sender = self._normalize_party(request.sender, "sender", oid, problems)
        recipient = self._normalize_party(request.recipient, "recipient", oid, problems)
        if not (request.goods_name or "").strip():
            problems.append("goods_name (required)")
        if request.pay_type not in ("1", "2"):
            problems.append(f"pay_type={request.pay_type!r} (expected 1 or 2)")
        if request.req_type not in ("1", "2"):
            problems.append(f"req_type={request.req_type!r} (expected 1 or 2)")

        insured = self._flag(request.insured, "N", "insured", oid)
        if insured == "Y" and request.insured_amount in (None, ""):
            problems.append("insured_amount (required when insured)")
        if problems:
            raise InvalidParameterError(problems)

        office_ser = request.office_ser or self.settings.office_ser
        if not office_ser:
            self.logger.warning("Order %s: no supply office code (officeSer) configured", oid)

        fields: Dict[str, Any] = {
            "apprNo": approval_no,
            "payType": request.pay_type,
            "reqType": request.req_type,
            "officeSer": office_ser,
            "orderNo": request.order_no or oid,
            "weight": self._positive_int(request.weight, DEFAULT_WEIGHT_KG, "weight", oid),
            "volume": self._positive_int(request.volume, DEFAULT_VOLUME_CM, "volume", oid),
            "microYn": self._flag(request.micro, "N", "micro", oid),
            "ordCompNm": sender.company or None,
            "ordNm": sender.name,
            "ordZip": sender.postal_code or None,
            "ordAddr1": sender.address,
            "ordAddr2": sender.detail,
            "ordTel": sender.phone or None,
            "ordMob": sender.mobile or None,
            "recNm": recipient.name,
            "recZip": recipient.postal_code,
            "recAddr1": recipient.address,
            "recAddr2": recipient.detail,
            "recTel": recipient.phone or None,
            "recMob": recipient.mobile or None,
            "contCd": request.content_code,
            "goodsNm": request.goods_name.strip(),
            "delivMsg": request.delivery_message or None,
            "insuYn": insured,
            "insuAmt": request.insured_amount if insured == "Y" else None,
            "printYn": self._flag(request.print_label, "Y", "print_label", oid),
            "inqTelCn": _digits_only(request.inquiry_phone) or None,
        }
        return fields, sender, recipient

    # --- carrier call ------------------------------------------------------------

    def _resolve_approval_no(self, request: BookingRequest) -> str:
        if request.approval_no:
            return request.approval_no
        if self.settings.approval_no:
            return self.settings.approval_no
        self.logger.info("No approval number configured; asking the carrier (GetApprNo)")
        return self.orders.get_approval_number()

    def _submit(self, request: BookingRequest) -> _Submission:
        test_mode = request.test_mode or self.settings.test_mode
        effective = replace(self.settings, test_mode=test_mode)
        use_mock = should_use_mock(self.credentials, effective)

        # Validate before the approval lookup so bad input never costs a carrier call.
        fields, sender, recipient = self.build_fields(request)
        if use_mock:
            approval_no = request.approval_no or self.settings.approval_no or MOCK_APPROVAL_NO
            fields["apprNo"] = approval_no
            response = mock_insert_order(fields["orderNo"], self.credentials, effective, now=self.clock())
        else:
            approval_no = self._resolve_approval_no(request)
            fields["apprNo"] = approval_no
            response = self.orders.insert_order(fields, test_mode=test_mode)

        if not response.regi_no:
            raise MissingTrackingNumberError(f"carrier returned no tracking number for order {request.order_id}")

        res_date = response.res_date or ""
        req_ymd = res_date[:8] if len(res_date) >= 8 else self.clock().strftime("%Y%m%d")
        context = BookingContext(
            order_no=fields["orderNo"],
            request_id=response.req_no,
            reservation_id=response.res_no,
            approval_no=approval_no,
            req_type=request.req_type,
            pay_type=request.pay_type,
            req_ymd=req_ymd,
            test_mode=test_mode,
            mock=use_mock,
        )
        return _Submission(response, context, fields, recipient, sender)

    @staticmethod
    def _fee(price: str) -> int:
        try:
            return int(float(re.sub(r"[^0-9.]", "", price or "") or 0))
        except ValueError:
            return 0

    def _delivery_routing(self, order_id: str, sub: _Submission) -> Optional[DeliveryRouting]:
        """Sorting codes from InsertOrder, else from the lookup service; never blocks the booking."""
        routing = sub.response.routing()
        if routing is not None or sub.context.mock or self.delivery_codes is None:
            return routing
        try:
            return self.delivery_codes.lookup(sub.recipient.postal_code)
        except ParcelError as ex:
            self.logger.warning(
                "Order %s: delivery sorting-code lookup failed (%s); label goes without it", order_id, ex
            )
            return None

    # --- public operations --------------------------------------------------------

    def book(self, request: BookingRequest) -> BookingResult:
        existing = self.repository.get(request.order_id)
        if existing is not None and existing.status is not ShipmentStatus.CANCELLED:
            raise AlreadyBookedError(
                f"order {request.order_id} is already booked ({existing.pickup_tracking_no})"
            )

        sub = self._submit(request)
        resp = sub.response
        now = self.clock()
        fee = self._fee(resp.price)
        island = is_island_destination(
            resp.island_add_fee, sub.recipient.postal_code, sub.recipient.address
        )

        meta = sub.context.to_event_metadata()
        meta.update(
            {
                "regiNo": resp.regi_no,
                "microYn": sub.fields["microYn"],
                "printYn": sub.fields["printYn"],
                "insuYn": sub.fields["insuYn"],
                "weight": str(sub.fields["weight"]),
                "volume": str(sub.fields["volume"]),
            }
        )
        booked_event = TrackingEvent(
            date=now.strftime("%Y.%m.%d"),
            time=now.strftime("%H:%M"),
            location=resp.regi_po_nm,
            status="소포신청",
            description="booked",
            metadata=meta,
        )

        pickup = sub.sender.snapshot()
        record = ShipmentRecord(
            order_id=request.order_id,
            status=ShipmentStatus.BOOKED,
            user_id=request.user_id,
            pickup_tracking_no=resp.regi_no,
            pickup_address=pickup,
            delivery_address=request.return_address or pickup,
            pickup_requested_at=now,
            fee=fee,
            originating_office=resp.regi_po_nm,
            is_island=island,
            booking_context=sub.context,
            tracking_events=(booked_event,),
        )
        self.repository.add(record)
        self.logger.info(
            "Booked order %s: tracking=%s office=%s fee=%s mock=%s",
            request.order_id,
            resp.regi_no,
            resp.regi_po_nm,
            fee,
            sub.context.mock,
        )

        safe_notify(
            self.notifier,
            self.logger,
            user_id=request.user_id,
            type=ORDER_BOOKED,
            title="수거 예약 완료",
            body=f"운송장번호 {resp.regi_no}로 수거가 예약되었습니다.",
            order_id=request.order_id,
        )

        return BookingResult(
            order_id=request.order_id,
            tracking_no=resp.regi_no,
            fee=fee,
            originating_office=resp.regi_po_nm,
            reservation_id=resp.res_no,
            request_id=resp.req_no,
            reserved_at=resp.res_date,
            virtual_phone=resp.v_tel_no,
            is_island=island,
            mock=sub.context.mock,
        )

    def book_delivery(self, order_id: str, request: BookingRequest) -> BookingResult:
        """Outbound label for a processed order; the status itself does not change."""
        record = self.repository.get(order_id)
        if record is None:
            raise ShipmentNotFoundError(f"no shipment for order {order_id}")
        if record.status is not ShipmentStatus.READY_TO_SHIP:
            raise ShipmentStateError(
                f"order {order_id} is {record.status.value}; delivery booking needs READY_TO_SHIP"
            )
        if record.delivery_tracking_no:
            raise AlreadyBookedError(
                f"order {order_id} already has delivery tracking number {record.delivery_tracking_no}"
            )

        sub = self._submit(request)
        resp = sub.response
        island = is_island_destination(
            resp.island_add_fee, sub.recipient.postal_code, sub.recipient.address
        )
        routing = self._delivery_routing(order_id, sub)

        record.assign_delivery_tracking_no(resp.regi_no)
        record.delivery_booking_context = sub.context
        record.delivery_address = AddressSnapshot(
            address=sub.recipient.address,
            detail=sub.recipient.detail,
            postal_code=sub.recipient.postal_code,
            phone=sub.recipient.mobile or sub.recipient.phone,
        )
        record.is_island = record.is_island or island
        record.delivery_routing = routing
        self.repository.save(record)
        self.logger.info("Booked delivery leg for order %s: tracking=%s", order_id, resp.regi_no)

        return BookingResult(
            order_id=order_id,
            tracking_no=resp.regi_no,
            fee=self._fee(resp.price),
            originating_office=resp.regi_po_nm,
            reservation_id=resp.res_no,
            request_id=resp.req_no,
            reserved_at=resp.res_date,
            virtual_phone=resp.v_tel_no,
            is_island=island,
            mock=sub.context.mock,
            leg="delivery",
            routing=routing,
        )
