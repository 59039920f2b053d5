"""Delivery sorting-code lookup (public-data portal, 집배구 구분코드 조회).

Answers look like:

    <response>
      <cmmMsgHeader><successYN>Y</successYN><returnCode>00</returnCode><errMsg/></cmmMsgHeader>
      <newAddressListAreaCd>
        <sopoArrcnpoNm>대구M</sopoArrcnpoNm><delivPoNm>동대구</delivPoNm>
        <dlvyareacd>-560-</dlvyareacd><printAreaCd>경1 701 56 05</printAreaCd>
      </newAddressListAreaCd>
    </response>
"""
from __future__ import annotations

from typing import Optional
import logging
import re

from epost_parcel.errors import CarrierApiError, InvalidParameterError
from epost_parcel.models import CarrierSettings, DeliveryRouting
from epost_parcel.models.env_cfg import DEFAULT_DELIVERY_CODE_URL

from .client import Transport
from .transport import RequestsTransport
from .xml_response import extract_field, parse_xml

_ZIP = re.compile(r"^\d{5}$")


def parse_delivery_code(xml: str) -> Optional[DeliveryRouting]:
    """DeliveryRouting from a lookup answer; None when the portal found no area."""
    root = parse_xml(xml)
    if (extract_field(root, "successYN") or "Y").upper() == "N":
        raise CarrierApiError(
            extract_field(root, "returnCode") or "LOOKUP_FAILED",
            extract_field(root, "errMsg", "returnAuthMsg") or "delivery code lookup failed",
        )

    sort_codes = [extract_field(root, f"sortCode{i}") or None for i in range(1, 5)]
    printed = (extract_field(root, "printAreaCd") or "").split()
    if len(printed) == 4 and not any(sort_codes):
        sort_codes = printed

    routing = DeliveryRouting(
        arr_cnpo_nm=extract_field(root, "sopoArrcnpoNm", "arrCnpoNm") or None,
        deliv_po_nm=extract_field(root, "delivPoNm") or None,
        deliv_area_cd=extract_field(root, "dlvyareacd", "delivAreaCd") or None,
        sort_code1=sort_codes[0],
        sort_code2=sort_codes[1],
        sort_code3=sort_codes[2],
        sort_code4=sort_codes[3],
        source="lookup",
    )
    return None if routing.is_empty else routing


class DeliveryCodeLookup:
    """Looks up outbound sorting codes by recipient postal code. Upstream errors propagate."""

    def __init__(
        self,
        service_key: str,
        url: str = DEFAULT_DELIVERY_CODE_URL,
        transport: Optional[Transport] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.service_key = service_key
        self.url = url
        self.transport = transport or RequestsTransport(max_retries=1)
        self.logger = logger or logging.getLogger("epost_parcel.api.delivery_code")

    @classmethod
    def from_settings(cls, settings: CarrierSettings) -> Optional["DeliveryCodeLookup"]:
        if not settings.delivery_code_api_key:
            return None
        return cls(settings.delivery_code_api_key, settings.delivery_code_url)

    def lookup(self, zipcode: str) -> Optional[DeliveryRouting]:
        clean = re.sub(r"[\s\-]", "", zipcode or "")
        if not _ZIP.match(clean):
            raise InvalidParameterError(f"zipcode={zipcode!r} (expected 5 digits)")

        resp = self.transport.get(
            self.url,
            params={"serviceKey": self.service_key, "srchwrd": clean, "numOfRows": "1", "pageNo": "1"},
        )
        routing = parse_delivery_code(resp.text or "")
        if routing is None:
            self.logger.info("No delivery sorting code for %s", clean)
        else:
            self.logger.debug("Delivery sorting code for %s: %s (%s)", clean, routing.print_code, routing.arr_cnpo_nm)
        return routing
