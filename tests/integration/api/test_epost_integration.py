import os

import pytest

from epost_parcel.api.client import EPostClient
from epost_parcel.api.orders import ParcelOrders
from epost_parcel.api.scraper import TracePageScraper
from epost_parcel.models import CarrierCredentials, CarrierSettings


def _env_creds():
    api_key = os.environ.get("EPOST_API_KEY")
    cipher_key = os.environ.get("EPOST_SECURITY_KEY")
    customer_no = os.environ.get("EPOST_CUSTOMER_ID")
    if not (api_key and cipher_key and customer_no) or os.environ.get("EPOST_RUN_LIVE") != "1":
        pytest.skip("carrier credentials or EPOST_RUN_LIVE=1 not set; skipping live tests")
    return CarrierCredentials(api_key, cipher_key, customer_no)


def _orders():
    creds = _env_creds()
    base_url = os.environ.get("EPOST_BASE_URL") or "http://ship.epost.go.kr"
    return ParcelOrders(EPostClient(creds, CarrierSettings(base_url=base_url, test_mode=True)))


def test_approval_number_is_returned():
    appr_no = _orders().get_approval_number()
    assert appr_no and isinstance(appr_no, str)


def test_stopped_zip_codes_is_a_list():
    codes = _orders().get_stopped_zip_codes()
    assert isinstance(codes, list)


def test_trace_page_for_unknown_number():
    _env_creds()
    result = TracePageScraper().fetch("0000000000000")
    assert result.no_result or result.events == ()
