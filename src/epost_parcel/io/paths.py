from __future__ import annotations

from pathlib import Path
from typing import Tuple

from epost_parcel.config.logging_config import default_log_path_for

PROCESSED_SUFFIX = "_processed.xlsx"
DEFAULT_STORE_NAME = "shipments.json"


def derive_output_paths(input_file: Path) -> Tuple[Path, Path]:
    """
    Given a polling workbook, return (processed_xlsx_path, log_path) beside it.

    Raises FileNotFoundError if input_file doesn't exist (explicit early signal for CLI).
    """
    p = Path(input_file)
    if not p.exists():
        raise FileNotFoundError(p)

    processed = p.with_name(f"{p.stem}{PROCESSED_SUFFIX}")
    return processed, default_log_path_for(p)


def resolve_store_path(store: Path | str | None) -> Path:
    """Shipment store file; a directory means `<dir>/shipments.json`."""
    p = Path(store).expanduser() if store else Path.cwd() / DEFAULT_STORE_NAME
    if p.is_dir():
        p = p / DEFAULT_STORE_NAME
    return p
