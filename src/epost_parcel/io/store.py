from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

from epost_parcel.errors import AlreadyBookedError
from epost_parcel.models import ShipmentRecord, ShipmentStatus


class ShipmentRepository(Protocol):
    def get(self, order_id: str) -> Optional[ShipmentRecord]:
        ...

    def find_by_tracking_no(self, tracking_no: str) -> Optional[ShipmentRecord]:
        ...

    def add(self, record: ShipmentRecord) -> None:
        ...

    def save(self, record: ShipmentRecord) -> None:
        ...

    def delete(self, order_id: str) -> bool:
        ...

    def all(self) -> Iterable[ShipmentRecord]:
        ...


def _check_can_add(existing: Optional[ShipmentRecord], record: ShipmentRecord) -> None:
    # A cancelled order may be booked again; anything else is a duplicate.
    if existing is not None and existing.status is not ShipmentStatus.CANCELLED:
        raise AlreadyBookedError(
            f"order {record.order_id} already has a {existing.status.value} shipment "
            f"({existing.pickup_tracking_no or 'no tracking number'})"
        )


def _matches(record: ShipmentRecord, tracking_no: str) -> bool:
    return tracking_no in (record.pickup_tracking_no, record.delivery_tracking_no)


@dataclass
class InMemoryShipmentRepository:
    """Dict-backed repository; hands out copies so callers can't mutate stored state."""

    records: Dict[str, ShipmentRecord] = field(default_factory=dict)

    def get(self, order_id: str) -> Optional[ShipmentRecord]:
        rec = self.records.get(order_id)
        return rec.copy() if rec else None

    def find_by_tracking_no(self, tracking_no: str) -> Optional[ShipmentRecord]:
        for rec in self.records.values():
            if _matches(rec, tracking_no):
                return rec.copy()
        return None

    def add(self, record: ShipmentRecord) -> None:
        _check_can_add(self.records.get(record.order_id), record)
        self.records[record.order_id] = record.copy()

    def save(self, record: ShipmentRecord) -> None:
        self.records[record.order_id] = record.copy()

    def delete(self, order_id: str) -> bool:
        return self.records.pop(order_id, None) is not None

    def all(self) -> Iterable[ShipmentRecord]:
        return [r.copy() for r in self.records.values()]


@dataclass
class JsonFileShipmentRepository:
    """Keep every shipment record in one JSON object keyed by order id.

    File shape on disk:
        {
          "ORD-1": { ...record... },
          "ORD-2": { ...record... }
        }

    Writes go to a sibling temp file first and then replace the original, so a
    failed write leaves the previous state intact. Write errors propagate.
    """

    path: Path
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.logger = self.logger or logging.getLogger("epost_parcel.io.store")
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object of shipments")
        return data

    def _dump(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def get(self, order_id: str) -> Optional[ShipmentRecord]:
        with self._lock:
            raw = self._load().get(order_id)
        return ShipmentRecord.from_dict(raw) if raw else None

    def find_by_tracking_no(self, tracking_no: str) -> Optional[ShipmentRecord]:
        with self._lock:
            data = self._load()
        for raw in data.values():
            rec = ShipmentRecord.from_dict(raw)
            if _matches(rec, tracking_no):
                return rec
        return None

    def add(self, record: ShipmentRecord) -> None:
        with self._lock:
            data = self._load()
            raw = data.get(record.order_id)
            _check_can_add(ShipmentRecord.from_dict(raw) if raw else None, record)
            data[record.order_id] = record.to_dict()
            self._dump(data)
        self.logger.debug("Stored new shipment %s in %s", record.order_id, self.path)

    def save(self, record: ShipmentRecord) -> None:
        with self._lock:
            data = self._load()
            data[record.order_id] = record.to_dict()
            self._dump(data)

    def delete(self, order_id: str) -> bool:
        with self._lock:
            data = self._load()
            if data.pop(order_id, None) is None:
                return False
            self._dump(data)
        self.logger.info("Deleted shipment %s from %s", order_id, self.path)
        return True

    def all(self) -> Iterable[ShipmentRecord]:
        with self._lock:
            data = self._load()
        return [ShipmentRecord.from_dict(raw) for raw in data.values()]
