from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from .shipment import AddressSnapshot, DeliveryRouting


@dataclass(frozen=True)
class Party:
    """Sender or recipient as the carrier sees it."""
    name: str
    postal_code: str
    address: str
    detail: str = ""
    phone: str = ""
    mobile: str = ""
    company: str = ""

    def snapshot(self) -> AddressSnapshot:
        return AddressSnapshot(
            address=self.address,
            detail=self.detail,
            postal_code=self.postal_code,
            phone=self.mobile or self.phone,
        )


@dataclass(frozen=True)
class BookingRequest:
    order_id: str
    sender: Party
    recipient: Party
    goods_name: str
    order_no: Optional[str] = None          # defaults to order_id
    content_code: str = "025"               # clothing / fashion goods
    weight: Any = None                      # kg; normalized to a positive int
    volume: Any = None                      # cm; normalized to a positive int
    pay_type: str = "1"
    req_type: str = "1"
    micro: Any = None
    print_label: Any = None
    insured: Any = None
    insured_amount: Any = None
    delivery_message: Optional[str] = None
    inquiry_phone: Optional[str] = None
    approval_no: Optional[str] = None
    office_ser: Optional[str] = None
    test_mode: bool = False
    user_id: Optional[str] = None
    return_address: Optional[AddressSnapshot] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookingRequest":
        body = dict(data)
        body["sender"] = Party(**body["sender"])
        body["recipient"] = Party(**body["recipient"])
        if body.get("return_address"):
            body["return_address"] = AddressSnapshot(**body["return_address"])
        return cls(**body)


@dataclass(frozen=True)
class InsertOrderResponse:
    """Decrypted InsertOrder answer (API SHPAPI-C02-01)."""
    req_no: str
    res_no: str
    regi_no: str
    regi_po_nm: str
    res_date: str
    price: str
    order_no: Optional[str] = None
    v_tel_no: Optional[str] = None
    insu_fee: Optional[str] = None
    island_add_fee: Optional[str] = None
    arr_cnpo_nm: Optional[str] = None
    deliv_po_nm: Optional[str] = None
    deliv_area_cd: Optional[str] = None

    def routing(self) -> Optional[DeliveryRouting]:
        found = DeliveryRouting(
            arr_cnpo_nm=self.arr_cnpo_nm,
            deliv_po_nm=self.deliv_po_nm,
            deliv_area_cd=self.deliv_area_cd,
            source="booking",
        )
        return None if found.is_empty else found


@dataclass(frozen=True)
class BookingResult:
    """Answer for either leg; `tracking_no` belongs to `leg`."""
    order_id: str
    tracking_no: str
    fee: int
    originating_office: str
    reservation_id: str
    request_id: str
    reserved_at: str = ""
    virtual_phone: Optional[str] = None
    is_island: bool = False
    mock: bool = False
    leg: str = "pickup"
    routing: Optional[DeliveryRouting] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResInfo:
    """GetResInfo answer (API SHPAPI-R02-01)."""
    req_no: str
    res_no: str
    regi_no: str
    regi_po_nm: str
    res_date: str
    price: str
    treat_stus_cd: str = "00"
    v_tel_no: Optional[str] = None


@dataclass(frozen=True)
class CancelOrderResponse:
    """GetResCancelCmd answer (API SHPAPI-U02-01)."""
    req_no: str
    res_no: str
    cancel_regi_no: str
    cancel_date: str
    canceled_yn: str       # Y cancelled, N not cancelled, D cancelled and deleted
    regi_no: Optional[str] = None
    not_cancel_reason: Optional[str] = None


@dataclass(frozen=True)
class CancelRequest:
    order_id: str
    delete_after_cancel: bool = False


@dataclass(frozen=True)
class CancelResult:
    order_id: str
    cancelled: bool
    deleted: bool
    soft_success: bool = False
    carrier_result: Optional[CancelOrderResponse] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
