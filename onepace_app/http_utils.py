# onepace_app/http_utils.py
import logging
from typing import Any, Dict, Optional

import requests
import requests.exceptions as req_exceptions
from tenacity import Retrying, stop_after_attempt, wait_fixed, retry_if_exception

log = logging.getLogger(__name__)

USER_AGENT = "OnePaceMetadataManager"


def should_retry_http_error(exception: BaseException) -> bool:
    if isinstance(exception, (req_exceptions.ConnectionError, req_exceptions.Timeout)):
        log.debug(f"Retry check PASSED for Connection/Timeout Error: {type(exception).__name__}")
        return True
    if isinstance(exception, req_exceptions.HTTPError):
        status_code = getattr(getattr(exception, 'response', None), 'status_code', 0) or 0
        if status_code == 429: log.warning("Retry check PASSED for HTTP 429 (Rate Limit)."); return True
        if 500 <= status_code <= 599: log.warning(f"Retry check PASSED for HTTP {status_code} (Server Error)."); return True
        if status_code == 401: log.error("Retry check FAILED for HTTP 401 (Unauthorized - Check token/API key)."); return False
        if status_code == 403: log.error("Retry check FAILED for HTTP 403 (Forbidden - Check token/permissions)."); return False
        if status_code == 404: log.debug("Retry check FAILED for HTTP 404 (Not Found)."); return False
        log.debug(f"Retry check FAILED for other HTTP Status Code: {status_code}"); return False
    log.debug(f"Retry check FAILED by default for: {type(exception).__name__}: {exception}")
    return False


class HttpTransport:
    """
    Thin blocking wrapper around a requests.Session.

    Every request raises for HTTP error statuses and is retried by tenacity on
    connection errors, timeouts, 429 and 5xx. Other failures propagate unchanged.
    """

    def __init__(self, base_url: str = "", headers: Optional[Dict[str, str]] = None, timeout: float = 30.0,
                 retry_attempts: int = 3, retry_wait_seconds: float = 1.0, session: Optional[requests.Session] = None):
        self.base_url = (base_url or "").rstrip('/')
        self.timeout = timeout
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_wait_seconds = float(retry_wait_seconds)
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        if headers:
            self.session.headers.update(headers)

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _retryer(self) -> Retrying:
        return Retrying(stop=stop_after_attempt(self.retry_attempts), wait=wait_fixed(self.retry_wait_seconds),
                        retry=retry_if_exception(should_retry_http_error), reraise=True)

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        response = self.session.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.url(path)
        log.debug(f"HTTP {method} {url}")
        return self._retryer()(self._send, method, url, **kwargs)

    def get_json(self, path: str, **kwargs: Any) -> Any:
        response = self.request("GET", path, **kwargs)
        if not response.content:
            return {}
        return response.json()

    def close(self) -> None:
        self.session.close()
