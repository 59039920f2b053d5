from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol
import logging

from epost_parcel.config.logging_config import mask_secret, preview
from epost_parcel.errors import InvalidParameterError
from epost_parcel.models import CarrierCredentials, CarrierSettings

from .codec import RequestCodec, serialize
from .transport import RequestsTransport
from .xml_response import raise_for_error


class Transport(Protocol):
    def get(self, url: str, *, headers: Optional[dict] = None, params: Optional[dict] = None) -> Any:
        ...


class EPostClient:
    """Parcel OpenAPI client.

    Responsibilities:
    - call(endpoint, fields): build the query (`key`, `regData`, optional `testYn`),
      GET it, and return the raw XML once no error shape is found in it.
    - Encryption lives in RequestCodec; classification in xml_response.

    Credentials are handed in at construction; nothing here reads the environment.
    """

    def __init__(
        self,
        credentials: CarrierCredentials,
        settings: Optional[CarrierSettings] = None,
        transport: Optional[Transport] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.credentials = credentials
        self.settings = settings or CarrierSettings()
        self.transport = transport or RequestsTransport(timeout=self.settings.timeout)
        self.codec = RequestCodec(credentials.cipher_key)
        self.logger: logging.Logger = logger or logging.getLogger("epost_parcel.api.client")

    def _endpoint_url(self, endpoint: str) -> str:
        return self.settings.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

    def build_params(
        self,
        fields: Mapping[str, Any],
        *,
        needs_encryption: bool = True,
        test_flag: Optional[str] = None,
    ) -> dict[str, str]:
        if not str(fields.get("custNo") or "").strip():
            raise InvalidParameterError("custNo (customer number is required on every call)")

        params: dict[str, str] = {"key": self.credentials.api_key}
        if needs_encryption:
            params["regData"] = self.codec.encode(fields)
        else:
            params.update({k: str(v) for k, v in fields.items() if v is not None})
        # Only ever sent as a plain parameter, and only when on.
        if test_flag == "Y":
            params["testYn"] = "Y"
        return params

    def call(
        self,
        endpoint: str,
        fields: Mapping[str, Any],
        needs_encryption: bool = True,
        test_flag: Optional[str] = None,
    ) -> str:
        url = self._endpoint_url(endpoint)
        params = self.build_params(fields, needs_encryption=needs_encryption, test_flag=test_flag)

        self.logger.debug(
            "EPost GET %s key=%s testYn=%s fields=%s",
            url,
            mask_secret(self.credentials.api_key),
            params.get("testYn", "N"),
            preview(serialize({k: v for k, v in fields.items() if k != "custNo"})),
        )

        resp = self.transport.get(url, params=params)
        text = resp.text or ""

        self.logger.debug(
            "EPost GET %s status=%s response_body=%s",
            url,
            getattr(resp, "status_code", None),
            preview(text),
        )

        raise_for_error(text)
        return text
