"""Synthetic InsertOrder answers for development without a carrier contract."""
from __future__ import annotations

from datetime import datetime
from typing import Optional
import logging
import random

from epost_parcel.errors import ConfigurationError
from epost_parcel.models import CarrierCredentials, CarrierSettings, InsertOrderResponse

logger = logging.getLogger("epost_parcel.api.mock")

MOCK_OFFICE = "나주우체국"
MOCK_PRICE = "3300"


def should_use_mock(credentials: Optional[CarrierCredentials], settings: CarrierSettings) -> bool:
    """
    Decide whether a booking may be fabricated.

    - complete credentials, test mode off: never
    - incomplete credentials: only outside production (production raises)
    - complete credentials in test mode: only with EPOST_USE_MOCK
    """
    if credentials is None:
        if settings.is_production:
            raise ConfigurationError(
                "Carrier credentials are incomplete in production; refusing to fabricate bookings.",
                variable="EPOST_SECURITY_KEY",
            )
        return True
    if not settings.test_mode:
        return False
    return settings.use_mock


def mock_insert_order(
    order_no: str,
    credentials: Optional[CarrierCredentials],
    settings: CarrierSettings,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> InsertOrderResponse:
    if not should_use_mock(credentials, settings):
        raise ConfigurationError(
            "Mock booking requested while real carrier credentials are active; "
            "set EPOST_TEST_MODE and EPOST_USE_MOCK to allow it."
        )

    now = now or datetime.now()
    rng = rng or random.Random()
    yymmdd = now.strftime("%y%m%d")

    logger.warning("Using mock InsertOrder for order %s (no carrier call made)", order_no)
    return InsertOrderResponse(
        req_no=f"{yymmdd}64036480{rng.randint(10, 99)}",
        res_no=f"{yymmdd}52119{rng.randint(1000, 9999)}",
        regi_no=f"601{yymmdd}{rng.randint(10000, 99999)}",
        regi_po_nm=MOCK_OFFICE,
        res_date=now.strftime("%Y%m%d%H%M%S"),
        price=MOCK_PRICE,
        order_no=order_no,
        v_tel_no=f"0505{rng.randint(1000000, 9999999)}",
    )
