from __future__ import annotations

from typing import Any, Dict, Optional
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from epost_parcel.errors import (
    UpstreamHttpError,
    UpstreamNetworkError,
    UpstreamTimeoutError,
)

# The carrier's gateway rejects unknown clients; these mirror its reference client.
DEFAULT_HEADERS = {
    "Accept": "application/xml, text/xml",
    "User-Agent": "Apache-HttpClient/4.5.1 (Java/1.8.0_91)",
}


class RequestsTransport:
    """Requests session wrapper that maps failures onto the upstream error types.

    Booking is not idempotent on the carrier side, so retries default to 0;
    callers that only read (trace page) may opt in.
    """

    def __init__(
        self,
        timeout: float = 30,
        max_retries: int = 0,
        backoff_factor: float = 0.3,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.timeout = timeout
        self.logger = logger or logging.getLogger("epost_parcel.api.transport")

        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def get(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """GET `url` and return the response; raises on timeout, network failure or non-2xx."""
        try:
            resp = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.Timeout as ex:
            self.logger.warning("Carrier request timed out after %ss: %s", self.timeout, url)
            raise UpstreamTimeoutError(url, self.timeout) from ex
        except requests.RequestException as ex:
            self.logger.warning("Carrier request failed: %s (%s)", url, ex)
            raise UpstreamNetworkError(url, type(ex).__name__) from ex

        if not 200 <= resp.status_code < 300:
            body = resp.text or ""
            self.logger.warning("Carrier returned HTTP %s for %s", resp.status_code, url)
            raise UpstreamHttpError(resp.status_code, body)
        return resp

    def close(self) -> None:
        self.session.close()
