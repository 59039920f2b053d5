from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Optional
import logging
import warnings

import pandas as pd

from epost_parcel.errors import ParcelError
from epost_parcel.pipelines.tracking import PollOutcome, TrackingReconciler

ORDER_COL = "Order ID"
TRACKING_COL = "Tracking Number"

RESULT_COLS = (
    "Shipment Status",
    "Stage Code",
    "Stage Source",
    "Transitioned",
    "Latest Event",
    "Poll Error",
)


def _clean_cell(v: Any) -> str:
    """Cell value as a clean string; numeric tracking numbers lose '.0' and exponent forms."""
    if v is None:
        return ""
    s = str(v).strip()
    if s == "" or s.lower() in ("nan", "none", "nat"):
        return ""
    try:
        as_float = float(s.replace(",", ""))
        if as_float.is_integer():
            return str(int(as_float))
    except ValueError:
        pass
    return s


def _latest_text(outcome: PollOutcome) -> str:
    ev = outcome.latest_event
    if ev is None:
        return ""
    return " ".join(p for p in (ev.date, ev.time, ev.location, ev.status) if p)


class WorkbookPoller:
    """Scheduler entry point: poll every order listed in a workbook and write the results beside it."""

    def __init__(self, reconciler: TrackingReconciler, logger: Optional[logging.Logger] = None) -> None:
        self.reconciler = reconciler
        self.logger = logger or logging.getLogger("epost_parcel.pipelines.workbook_poller")

    def process(self, input_path: Path, processed_path: Path) -> dict[str, Any]:
        input_path = Path(input_path)
        processed_path = Path(processed_path)

        if not input_path.exists():
            self.logger.error("Input file does not exist: %s", input_path)
            raise FileNotFoundError(input_path)

        df_in = self._read_input(input_path)
        df_out = self._poll_rows(df_in)

        now_utc = dt.datetime.now(dt.timezone.utc).isoformat()
        marker = pd.DataFrame(
            [
                {
                    "_epost_marker": "ok",
                    "input_name": input_path.name,
                    "output_name": processed_path.name,
                    "timestamp_utc": now_utc,
                    "rows": len(df_out),
                    "transitioned": int(df_out["Transitioned"].sum()),
                    "errors": int((df_out["Poll Error"] != "").sum()),
                }
            ]
        )

        processed_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_workbook(processed_path, df_out, marker)
        self.logger.info("Wrote processed workbook → %s", processed_path)

        return {
            "output_path": str(processed_path),
            "timestamp_utc": now_utc,
            "rows": len(df_out),
            "transitioned": int(marker.at[0, "transitioned"]),
            "errors": int(marker.at[0, "errors"]),
            "output_cols": list(df_out.columns),
        }

    def _read_input(self, input_path: Path) -> pd.DataFrame:
        # dtype=str keeps long tracking numbers from turning into floats.
        df_in = pd.read_excel(input_path, sheet_name=0, engine="openpyxl", dtype=str)
        self.logger.debug(
            "Opened input workbook: %s (rows=%d, cols=%d)",
            input_path.name,
            len(df_in),
            len(df_in.columns),
        )
        if ORDER_COL not in df_in.columns and TRACKING_COL not in df_in.columns:
            raise ValueError(
                f"{input_path.name} needs an '{ORDER_COL}' or '{TRACKING_COL}' column"
            )
        return df_in

    def _poll_one(self, order_id: str, tracking_no: str) -> dict[str, Any]:
        try:
            if order_id:
                outcome = self.reconciler.poll_order(order_id)
            elif tracking_no:
                outcome = self.reconciler.poll(tracking_no)
            else:
                return {"Poll Error": "row has neither order id nor tracking number"}
        except ParcelError as ex:
            self.logger.warning("Poll failed for order=%s tracking=%s: %s", order_id or "-", tracking_no or "-", ex)
            return {"Poll Error": str(ex)}

        return {
            "Shipment Status": outcome.status.value,
            "Stage Code": outcome.stage or "",
            "Stage Source": outcome.source or "",
            "Transitioned": outcome.transitioned,
            "Latest Event": _latest_text(outcome),
            "Poll Error": "; ".join(e for e in (outcome.scrape_error, outcome.api_error) if e),
        }

    def _poll_rows(self, df_in: pd.DataFrame) -> pd.DataFrame:
        out = df_in.copy()
        for col in (ORDER_COL, TRACKING_COL):
            if col in out.columns:
                out[col] = out[col].astype("object").map(_clean_cell)

        rows = []
        for _, row in out.iterrows():
            result = {c: "" for c in RESULT_COLS}
            result["Transitioned"] = False
            result.update(self._poll_one(row.get(ORDER_COL, ""), row.get(TRACKING_COL, "")))
            rows.append(result)

        results = pd.DataFrame(rows, columns=list(RESULT_COLS), index=out.index)
        for col in RESULT_COLS:
            out[col] = results[col]
        out["Transitioned"] = out["Transitioned"].astype(bool)
        return out

    def _write_workbook(self, processed_path: Path, df_out: pd.DataFrame, marker: pd.DataFrame) -> None:
        changed = df_out[df_out["Transitioned"]]
        failed = df_out[df_out["Poll Error"] != ""]

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            with pd.ExcelWriter(processed_path, engine="openpyxl", mode="w") as xw:
                df_out.to_excel(xw, sheet_name="Processed", index=False, na_rep="")
                changed.to_excel(xw, sheet_name="Transitioned", index=False, na_rep="")
                failed.to_excel(xw, sheet_name="Poll Errors", index=False, na_rep="")
                marker.to_excel(xw, sheet_name="Marker", index=False)
