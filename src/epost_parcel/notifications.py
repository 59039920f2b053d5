from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple
import logging

from epost_parcel.models import ShipmentStatus

ORDER_BOOKED = "order_booked"
ORDER_PICKED_UP = "order_picked_up"
ORDER_IN_TRANSIT = "order_in_transit"
ORDER_INBOUND = "order_inbound"
ORDER_OUT_FOR_DELIVERY = "order_out_for_delivery"
ORDER_DELIVERED = "order_delivered"

# status reached -> (type, title, body)
STATUS_NOTICES: Dict[ShipmentStatus, Tuple[str, str, str]] = {
    ShipmentStatus.PICKED_UP: (ORDER_PICKED_UP, "수거 완료", "택배 기사님이 물품을 수거했습니다."),
    ShipmentStatus.IN_TRANSIT: (ORDER_IN_TRANSIT, "이동 중", "물품이 센터로 이동 중입니다."),
    ShipmentStatus.INBOUND: (ORDER_INBOUND, "입고 완료", "물품이 센터에 도착했습니다."),
    ShipmentStatus.OUT_FOR_DELIVERY: (ORDER_OUT_FOR_DELIVERY, "배송 시작", "물품 배송이 시작되었습니다."),
    ShipmentStatus.DELIVERED: (ORDER_DELIVERED, "배송 완료", "물품이 배송 완료되었습니다."),
}


class NotificationBridge(Protocol):
    def notify(
        self,
        user_id: Optional[str],
        type: str,
        title: str,
        body: str,
        order_id: str,
    ) -> None:
        ...


class LoggingNotificationBridge:
    """Writes notifications to the log; stands in until a push/SMS channel is wired."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("epost_parcel.notifications")

    def notify(
        self,
        user_id: Optional[str],
        type: str,
        title: str,
        body: str,
        order_id: str,
    ) -> None:
        self.logger.info(
            "notify user=%s type=%s order=%s title=%s body=%s",
            user_id or "-",
            type,
            order_id,
            title,
            body,
        )


def notice_for(status: ShipmentStatus) -> Optional[Tuple[str, str, str]]:
    return STATUS_NOTICES.get(status)


def safe_notify(
    bridge: Optional[NotificationBridge],
    logger: logging.Logger,
    *,
    user_id: Optional[str],
    type: str,
    title: str,
    body: str,
    order_id: str,
) -> bool:
    """Deliver one notification; a failing bridge is logged and reported as False."""
    if bridge is None:
        return False
    try:
        bridge.notify(user_id, type, title, body, order_id)
        return True
    except Exception as ex:  # notifications never fail the caller
        logger.warning("Notification %s for order %s failed: %s", type, order_id, ex)
        return False
