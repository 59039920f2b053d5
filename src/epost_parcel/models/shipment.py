from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

CARRIER = "EPOST"


class ShipmentStatus(str, Enum):
    BOOKED = "BOOKED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    INBOUND = "INBOUND"
    PROCESSING = "PROCESSING"
    READY_TO_SHIP = "READY_TO_SHIP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def rank(self) -> int:
        """Position in the forward lifecycle. CANCELLED sits outside it (-1)."""
        if self is ShipmentStatus.CANCELLED:
            return -1
        return _FORWARD_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED)

    def is_before(self, other: "ShipmentStatus") -> bool:
        return self.rank < other.rank


_FORWARD_ORDER = (
    ShipmentStatus.BOOKED,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.INBOUND,
    ShipmentStatus.PROCESSING,
    ShipmentStatus.READY_TO_SHIP,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
)


class Leg(str, Enum):
    """Which half of the round trip a tracking number belongs to."""
    PICKUP = "pickup"      # customer -> center
    DELIVERY = "delivery"  # center -> customer


@dataclass(frozen=True)
class AddressSnapshot:
    address: str = ""
    detail: str = ""
    postal_code: str = ""
    phone: str = ""


@dataclass(frozen=True)
class DeliveryRouting:
    """Sorting codes printed on an outbound label, e.g. `경1 701 56 05 -560-`."""
    arr_cnpo_nm: Optional[str] = None     # arrival hub (소포집중국명)
    deliv_po_nm: Optional[str] = None     # delivering office
    deliv_area_cd: Optional[str] = None   # delivery course, "-560-"
    sort_code1: Optional[str] = None      # hub number
    sort_code2: Optional[str] = None      # delivering office number
    sort_code3: Optional[str] = None      # team
    sort_code4: Optional[str] = None      # route
    source: str = "booking"               # "booking" (InsertOrder) or "lookup"

    @property
    def is_empty(self) -> bool:
        return not (self.arr_cnpo_nm or self.deliv_po_nm or self.deliv_area_cd)

    @property
    def print_code(self) -> str:
        parts = (self.sort_code1, self.sort_code2, self.sort_code3, self.sort_code4, self.deliv_area_cd)
        return " ".join(p for p in parts if p)


@dataclass(frozen=True)
class TrackingEvent:
    date: str          # yyyy.mm.dd
    time: str          # HH:MM
    location: str
    status: str        # free text from the carrier
    description: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["metadata"] = dict(self.metadata)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackingEvent":
        return cls(
            date=str(data.get("date", "")),
            time=str(data.get("time", "")),
            location=str(data.get("location", "")),
            status=str(data.get("status", "")),
            description=data.get("description"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class BookingContext:
    """Identifiers and flags a cancellation has to replay verbatim."""
    order_no: str
    request_id: str        # reqNo
    reservation_id: str    # resNo
    approval_no: str       # apprNo
    req_type: str          # "1" normal parcel, "2" return parcel
    pay_type: str          # "1" prepaid, "2" collect on delivery
    req_ymd: str           # YYYYMMDD the carrier registered the order
    test_mode: bool = False
    mock: bool = False

    def to_event_metadata(self) -> dict[str, str]:
        """Legacy key names, as stored on the first tracking event."""
        return {
            "orderNo": self.order_no,
            "reqNo": self.request_id,
            "resNo": self.reservation_id,
            "apprNo": self.approval_no,
            "reqType": self.req_type,
            "payType": self.pay_type,
            "reqYmd": self.req_ymd,
            "testYn": "Y" if self.test_mode else "N",
            "mock": "Y" if self.mock else "N",
        }

    @classmethod
    def from_event_metadata(cls, meta: Mapping[str, str]) -> Optional["BookingContext"]:
        if not meta or not meta.get("reqType") or not meta.get("payType"):
            return None
        return cls(
            order_no=meta.get("orderNo", ""),
            request_id=meta.get("reqNo", ""),
            reservation_id=meta.get("resNo", ""),
            approval_no=meta.get("apprNo", ""),
            req_type=meta["reqType"],
            pay_type=meta["payType"],
            req_ymd=meta.get("reqYmd", ""),
            test_mode=meta.get("testYn") == "Y",
            mock=meta.get("mock") == "Y",
        )


@dataclass
class ShipmentRecord:
    order_id: str
    status: ShipmentStatus = ShipmentStatus.BOOKED
    user_id: Optional[str] = None
    carrier: str = CARRIER
    pickup_tracking_no: Optional[str] = None
    delivery_tracking_no: Optional[str] = None
    pickup_address: AddressSnapshot = field(default_factory=AddressSnapshot)
    delivery_address: AddressSnapshot = field(default_factory=AddressSnapshot)
    pickup_requested_at: Optional[datetime] = None
    pickup_completed_at: Optional[datetime] = None
    delivery_started_at: Optional[datetime] = None
    delivery_completed_at: Optional[datetime] = None
    fee: Optional[int] = None
    originating_office: Optional[str] = None
    is_island: bool = False
    booking_context: Optional[BookingContext] = None
    delivery_booking_context: Optional[BookingContext] = None
    delivery_routing: Optional[DeliveryRouting] = None
    tracking_events: tuple[TrackingEvent, ...] = ()

    # --- tracking numbers ------------------------------------------------------

    def assign_delivery_tracking_no(self, tracking_no: str) -> None:
        if self.delivery_tracking_no and self.delivery_tracking_no != tracking_no:
            raise ValueError(
                f"delivery tracking number already assigned for order {self.order_id}")
        self.delivery_tracking_no = tracking_no

    def leg_of(self, tracking_no: str) -> Optional[Leg]:
        if tracking_no and tracking_no == self.pickup_tracking_no:
            return Leg.PICKUP
        if tracking_no and tracking_no == self.delivery_tracking_no:
            return Leg.DELIVERY
        return None

    def active_leg(self) -> tuple[Optional[Leg], Optional[str]]:
        if self.delivery_tracking_no and not self.status.is_before(ShipmentStatus.READY_TO_SHIP):
            return Leg.DELIVERY, self.delivery_tracking_no
        if self.pickup_tracking_no:
            return Leg.PICKUP, self.pickup_tracking_no
        return None, None

    def context_for(self, leg: Leg) -> Optional[BookingContext]:
        if leg is Leg.DELIVERY:
            return self.delivery_booking_context
        if self.booking_context is not None:
            return self.booking_context
        # Records written before the context was embedded kept it on the first event.
        if self.tracking_events:
            return BookingContext.from_event_metadata(self.tracking_events[0].metadata)
        return None

    # --- events / timestamps ---------------------------------------------------

    def append_event(self, event: TrackingEvent) -> None:
        self.tracking_events = self.tracking_events + (event,)

    def mark_once(self, attr: str, when: datetime) -> None:
        """Set a lifecycle timestamp unless it is already set."""
        if getattr(self, attr) is None:
            setattr(self, attr, when)

    def copy(self) -> "ShipmentRecord":
        return replace(self)

    # --- (de)serialization -----------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "user_id": self.user_id,
            "carrier": self.carrier,
            "pickup_tracking_no": self.pickup_tracking_no,
            "delivery_tracking_no": self.delivery_tracking_no,
            "pickup_address": asdict(self.pickup_address),
            "delivery_address": asdict(self.delivery_address),
            "pickup_requested_at": _iso(self.pickup_requested_at),
            "pickup_completed_at": _iso(self.pickup_completed_at),
            "delivery_started_at": _iso(self.delivery_started_at),
            "delivery_completed_at": _iso(self.delivery_completed_at),
            "fee": self.fee,
            "originating_office": self.originating_office,
            "is_island": self.is_island,
            "booking_context": asdict(self.booking_context) if self.booking_context else None,
            "delivery_booking_context": (
                asdict(self.delivery_booking_context) if self.delivery_booking_context else None
            ),
            "delivery_routing": asdict(self.delivery_routing) if self.delivery_routing else None,
            "tracking_events": [e.to_dict() for e in self.tracking_events],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShipmentRecord":
        ctx = data.get("booking_context")
        dctx = data.get("delivery_booking_context")
        routing = data.get("delivery_routing")
        return cls(
            order_id=str(data["order_id"]),
            status=ShipmentStatus(data.get("status", ShipmentStatus.BOOKED.value)),
            user_id=data.get("user_id"),
            carrier=data.get("carrier") or CARRIER,
            pickup_tracking_no=data.get("pickup_tracking_no"),
            delivery_tracking_no=data.get("delivery_tracking_no"),
            pickup_address=AddressSnapshot(**(data.get("pickup_address") or {})),
            delivery_address=AddressSnapshot(**(data.get("delivery_address") or {})),
            pickup_requested_at=_parse_dt(data.get("pickup_requested_at")),
            pickup_completed_at=_parse_dt(data.get("pickup_completed_at")),
            delivery_started_at=_parse_dt(data.get("delivery_started_at")),
            delivery_completed_at=_parse_dt(data.get("delivery_completed_at")),
            fee=data.get("fee"),
            originating_office=data.get("originating_office"),
            is_island=bool(data.get("is_island", False)),
            booking_context=BookingContext(**ctx) if ctx else None,
            delivery_booking_context=BookingContext(**dctx) if dctx else None,
            delivery_routing=DeliveryRouting(**routing) if routing else None,
            tracking_events=tuple(
                TrackingEvent.from_dict(e) for e in data.get("tracking_events") or []
            ),
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
