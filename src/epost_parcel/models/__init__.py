from .env_cfg import CarrierCredentials, CarrierSettings, EnvCfg
from .shipment import (
    AddressSnapshot,
    BookingContext,
    DeliveryRouting,
    Leg,
    ShipmentRecord,
    ShipmentStatus,
    TrackingEvent,
)
from .booking import (
    BookingRequest,
    BookingResult,
    CancelOrderResponse,
    CancelRequest,
    CancelResult,
    InsertOrderResponse,
    Party,
    ResInfo,
)

__all__ = [
    "EnvCfg",
    "CarrierCredentials",
    "CarrierSettings",
    "AddressSnapshot",
    "BookingContext",
    "DeliveryRouting",
    "Leg",
    "ShipmentRecord",
    "ShipmentStatus",
    "TrackingEvent",
    "BookingRequest",
    "BookingResult",
    "CancelOrderResponse",
    "CancelRequest",
    "CancelResult",
    "InsertOrderResponse",
    "Party",
    "ResInfo",
]
