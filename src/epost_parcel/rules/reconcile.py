# src/epost_parcel/rules/reconcile.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from epost_parcel.models import Leg, ResInfo, ShipmentStatus, TrackingEvent

from .stage_mapper import (
    DELIVERED,
    IN_TRANSIT,
    PICKED_UP,
    derive_stage,
    treat_status_name,
)

S = ShipmentStatus

# leg -> stage -> (statuses allowed to move, target)
TRANSITIONS: Dict[Leg, Dict[str, Tuple[FrozenSet[ShipmentStatus], ShipmentStatus]]] = {
    Leg.PICKUP: {
        PICKED_UP: (frozenset({S.BOOKED}), S.PICKED_UP),
        IN_TRANSIT: (frozenset({S.BOOKED, S.PICKED_UP}), S.IN_TRANSIT),
        # Arrival at the center, not delivery to the customer.
        DELIVERED: (frozenset({S.BOOKED, S.PICKED_UP, S.IN_TRANSIT}), S.INBOUND),
    },
    Leg.DELIVERY: {
        PICKED_UP: (frozenset({S.READY_TO_SHIP}), S.OUT_FOR_DELIVERY),
        IN_TRANSIT: (frozenset({S.READY_TO_SHIP}), S.OUT_FOR_DELIVERY),
        DELIVERED: (frozenset({S.READY_TO_SHIP, S.OUT_FOR_DELIVERY}), S.DELIVERED),
    },
}

# Lifecycle timestamps each target sets (only if still empty).
TIMESTAMP_FIELDS: Dict[ShipmentStatus, Tuple[str, ...]] = {
    S.PICKED_UP: ("pickup_completed_at",),
    S.IN_TRANSIT: ("pickup_completed_at",),
    S.INBOUND: ("pickup_completed_at",),
    S.OUT_FOR_DELIVERY: ("delivery_started_at",),
    S.DELIVERED: ("delivery_started_at", "delivery_completed_at"),
}


@dataclass(frozen=True)
class Reconciliation:
    new_status: Optional[ShipmentStatus]
    events: Tuple[TrackingEvent, ...]
    stage: Optional[str]
    source: Optional[str]

    @property
    def transitioned(self) -> bool:
        return self.new_status is not None

    @property
    def timestamp_fields(self) -> Tuple[str, ...]:
        return TIMESTAMP_FIELDS.get(self.new_status, ()) if self.new_status else ()


def next_status(current: ShipmentStatus, leg: Leg, stage: Optional[str]) -> Optional[ShipmentStatus]:
    """Target status for this stage, or None when the move is not allowed."""
    if stage is None or current.is_terminal:
        return None
    rule = TRANSITIONS[leg].get(stage)
    if rule is None:
        return None
    allowed, target = rule
    if current not in allowed or not current.is_before(target):
        return None
    return target


def _transition_event(
    current: ShipmentStatus,
    target: ShipmentStatus,
    leg: Leg,
    stage: str,
    source: str,
    latest: Optional[TrackingEvent],
    api: Optional[ResInfo],
    now: datetime,
) -> TrackingEvent:
    meta = {
        "leg": leg.value,
        "stage": stage,
        "source": source,
        "from": current.value,
        "to": target.value,
    }
    if latest is not None:
        return TrackingEvent(
            date=latest.date,
            time=latest.time,
            location=latest.location,
            status=latest.status,
            description=f"{current.value} -> {target.value}",
            metadata=meta,
        )
    return TrackingEvent(
        date=now.strftime("%Y.%m.%d"),
        time=now.strftime("%H:%M"),
        location=(api.regi_po_nm if api else "") or "",
        status=treat_status_name(stage),
        description=f"{current.value} -> {target.value}",
        metadata=meta,
    )


def reconcile(
    current: ShipmentStatus,
    leg: Leg,
    scrape,
    api: Optional[ResInfo],
    now: datetime,
) -> Reconciliation:
    """
    Decide what one poll means for a shipment.

    `scrape` is a ScrapeResult (or None). At most one forward transition is
    returned, together with the single event that records it.
    """
    events = tuple(scrape.events) if scrape is not None else ()
    delivery_status = scrape.delivery_status if scrape is not None else None

    stage, source = derive_stage(events, delivery_status, api)
    target = next_status(current, leg, stage)
    if target is None:
        return Reconciliation(new_status=None, events=(), stage=stage, source=source)

    latest = events[-1] if events else None
    event = _transition_event(current, target, leg, stage, source, latest, api, now)
    return Reconciliation(new_status=target, events=(event,), stage=stage, source=source)
