from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from epost_parcel.config.logging_config import mask_secret


DEFAULT_BASE_URL = "http://ship.epost.go.kr"
DEFAULT_TRACE_URL = "https://service.epost.go.kr/trace.RetrieveDomRigiTraceList.comm"
DEFAULT_DELIVERY_CODE_URL = "http://openapi.epost.go.kr/postal/retrieveNewAdressAreaCd"


@dataclass(frozen=True)
class EnvCfg:
    """Raw shape we need from get_app_env(); blanks mean 'not set'."""
    EPOST_API_KEY: str = ""
    EPOST_SECURITY_KEY: str = ""
    EPOST_CUSTOMER_ID: str = ""
    EPOST_APPROVAL_NO: str = ""
    EPOST_OFFICE_SER: str = ""
    EPOST_TEST_MODE: str = ""
    EPOST_USE_MOCK: str = ""
    EPOST_BASE_URL: str = ""
    EPOST_TRACE_URL: str = ""
    EPOST_DELIVERY_CODE_API_KEY: str = ""
    EPOST_DELIVERY_CODE_URL: str = ""
    APP_ENV: str = ""


@dataclass(frozen=True)
class CarrierCredentials:
    api_key: str
    cipher_key: str
    customer_no: str

    def masked(self) -> dict[str, str]:
        """Log-safe view: only the last four characters of each secret."""
        return {
            "api_key": mask_secret(self.api_key),
            "cipher_key": mask_secret(self.cipher_key),
            "customer_no": self.customer_no,
        }


@dataclass(frozen=True)
class CarrierSettings:
    base_url: str = DEFAULT_BASE_URL
    trace_url: str = DEFAULT_TRACE_URL
    timeout: float = 30.0
    approval_no: Optional[str] = None
    office_ser: Optional[str] = None
    test_mode: bool = False
    use_mock: bool = False
    app_env: str = "development"
    delivery_code_api_key: Optional[str] = None   # public-data portal service key
    delivery_code_url: str = DEFAULT_DELIVERY_CODE_URL

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("production", "prod")
