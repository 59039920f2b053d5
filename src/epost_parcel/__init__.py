# src/epost_parcel/__init__.py
from .pipelines.booking import Booker
from .pipelines.cancellation import Canceller
from .pipelines.tracking import TrackingReconciler
from .pipelines.workbook_poller import WorkbookPoller

__all__ = [
    "Booker",
    "Canceller",
    "TrackingReconciler",
    "WorkbookPoller",
]
