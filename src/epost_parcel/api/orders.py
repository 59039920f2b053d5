from __future__ import annotations

from typing import Any, List, Mapping, Optional
import logging

from epost_parcel.errors import CarrierApiError, MissingTrackingNumberError
from epost_parcel.models import CancelOrderResponse, InsertOrderResponse, ResInfo

from .client import EPostClient
from .xml_response import extract_all, extract_field, parse_xml

INSERT_ORDER = "api.InsertOrder.jparcel"            # SHPAPI-C02-01
GET_RES_INFO = "api.GetResInfo.jparcel"             # SHPAPI-R02-01
CANCEL_ORDER = "api.GetResCancelCmd.jparcel"        # SHPAPI-U02-01
GET_APPROVAL_NO = "api.GetApprNo.jparcel"           # COMAPI-R01-02
GET_STOPPED_ZIP = "api.GetStoppedZipCd.jparcel"     # COMAPI-R02-01


class ParcelOrders:
    """The five carrier operations, each returning a typed answer."""

    def __init__(self, client: EPostClient, *, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger("epost_parcel.api.orders")

    @property
    def customer_no(self) -> str:
        return self.client.credentials.customer_no

    def _with_customer(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        # custNo leads the payload, as in the carrier's manual.
        body: dict[str, Any] = {"custNo": str(fields.get("custNo") or self.customer_no).strip()}
        body.update((k, v) for k, v in fields.items() if k != "custNo")
        return body

    def insert_order(self, fields: Mapping[str, Any], *, test_mode: bool = False) -> InsertOrderResponse:
        xml = self.client.call(
            INSERT_ORDER,
            self._with_customer(fields),
            needs_encryption=True,
            test_flag="Y" if test_mode else None,
        )
        root = parse_xml(xml)
        result = InsertOrderResponse(
            req_no=extract_field(root, "reqNo") or "",
            res_no=extract_field(root, "resNo") or "",
            regi_no=extract_field(root, "regiNo") or "",
            regi_po_nm=extract_field(root, "regiPoNm", "regipoNm") or "",
            res_date=extract_field(root, "resDate") or "",
            price=extract_field(root, "price") or "0",
            order_no=extract_field(root, "orderNo") or None,
            v_tel_no=extract_field(root, "vTelNo") or None,
            insu_fee=extract_field(root, "insuFee") or None,
            island_add_fee=extract_field(root, "islandAddFee") or None,
            arr_cnpo_nm=extract_field(root, "arrCnpoNm") or None,
            deliv_po_nm=extract_field(root, "delivPoNm") or None,
            deliv_area_cd=extract_field(root, "delivAreaCd") or None,
        )
        if not result.regi_no:
            raise MissingTrackingNumberError(
                f"InsertOrder succeeded without a tracking number (reqNo={result.req_no or '-'})"
            )
        self.logger.info("InsertOrder accepted: regiNo=%s office=%s", result.regi_no, result.regi_po_nm)
        return result

    def get_res_info(self, *, req_type: str, order_no: str, req_ymd: str) -> ResInfo:
        xml = self.client.call(
            GET_RES_INFO,
            self._with_customer({"reqType": req_type, "orderNo": order_no, "reqYmd": req_ymd}),
        )
        root = parse_xml(xml)
        return ResInfo(
            req_no=extract_field(root, "reqNo") or "",
            res_no=extract_field(root, "resNo") or "",
            regi_no=extract_field(root, "regiNo") or "",
            regi_po_nm=extract_field(root, "regiPoNm", "regipoNm") or "",
            res_date=extract_field(root, "resDate") or "",
            price=extract_field(root, "price") or "0",
            treat_stus_cd=extract_field(root, "treatStusCd") or "00",
            v_tel_no=extract_field(root, "vTelNo") or None,
        )

    def cancel_order(
        self,
        *,
        appr_no: str,
        req_type: str,
        pay_type: str,
        req_no: str,
        res_no: str,
        regi_no: str,
        req_ymd: Optional[str],
        delete: bool = False,
    ) -> CancelOrderResponse:
        fields = self._with_customer(
            {
                "apprNo": appr_no,
                "reqType": req_type,
                "payType": pay_type,
                "reqNo": req_no,
                "resNo": res_no,
                "regiNo": regi_no,
                "reqYmd": req_ymd or None,
                "delYn": "Y" if delete else "N",
            }
        )
        root = parse_xml(self.client.call(CANCEL_ORDER, fields))
        return CancelOrderResponse(
            req_no=extract_field(root, "reqNo") or "",
            res_no=extract_field(root, "resNo") or "",
            cancel_regi_no=extract_field(root, "cancelRegiNo") or "",
            cancel_date=extract_field(root, "cancelDate") or "",
            canceled_yn=(extract_field(root, "canceledYn") or "N").upper(),
            regi_no=extract_field(root, "regiNo") or None,
            not_cancel_reason=extract_field(root, "notCancelReason") or None,
        )

    def get_approval_number(self) -> str:
        xml = self.client.call(GET_APPROVAL_NO, self._with_customer({}))
        appr_no = extract_field(xml, "apprNo")
        if not appr_no:
            raise CarrierApiError("NO_APPROVAL_NO", "approval number not found in GetApprNo answer")
        return appr_no

    def get_stopped_zip_codes(self, zip_cd: Optional[str] = None) -> List[str]:
        """Postal codes where pickup is currently suspended (sent unencrypted)."""
        fields = self._with_customer({"zipCd": zip_cd} if zip_cd else {})
        xml = self.client.call(GET_STOPPED_ZIP, fields, needs_encryption=False)
        return extract_all(xml, "zipCd")
