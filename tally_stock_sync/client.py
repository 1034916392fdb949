"""
Tally HTTP client for stock synchronization.

Posts XML export requests to the configured Tally endpoint with a bounded
timeout and a retry on transient connection failures.
"""
from __future__ import annotations
import re
import threading
from typing import Optional
import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .builder import build_connection_probe
from .config import StockSyncConfig
from .errors import LedgerStatusError, NetworkError

DEFAULT_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "Accept": "text/xml",
    "User-Agent": "tally-stock-sync/1.0",
}

TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


class TallyStockClient:
    """
    HTTP client for the Tally XML API.

    Features:
    - Retry with exponential backoff on connection errors and timeouts
    - Connection pooling via one requests.Session per thread
    - Bounded, configurable timeouts
    - Tally STATUS / LINEERROR detection
    """

    def __init__(self, config: Optional[StockSyncConfig] = None):
        self.config = config or StockSyncConfig.from_env()
        self.base_url = self.config.tally_url.rstrip("/")
        self.company = self.config.tally_company
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """Session of the calling thread, created on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(DEFAULT_HEADERS)
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _send(self, xml: str, timeout: int) -> requests.Response:
        return self.session.post(self.base_url, data=xml.encode("utf-8"), timeout=timeout)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(max(1, self.config.retry_attempts)),
            wait=wait_exponential(multiplier=self.config.retry_wait, min=0, max=10),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying Tally request (attempt {retry_state.attempt_number})..."
            ),
            reraise=True,
        )

    def post_xml(self, xml: str, timeout: Optional[int] = None) -> str:
        """
        Post XML to Tally and return the response text.

        Args:
            xml: XML request string
            timeout: Request timeout in seconds (uses config default if not specified)

        Raises:
            NetworkError: If Tally cannot be reached, times out or answers
                with a non-success HTTP status
            LedgerStatusError: If Tally answers with STATUS other than 1
        """
        timeout = timeout or self.config.request_timeout
        try:
            r = self._retrying()(self._send, xml, timeout)
            r.raise_for_status()
        except requests.Timeout as e:
            logger.error(f"Tally request timed out after {timeout}s")
            raise NetworkError(f"Request timeout: {e}") from e
        except requests.ConnectionError as e:
            logger.error(f"Failed to connect to Tally at {self.base_url}: {e}")
            raise NetworkError(f"Cannot connect to Tally: {e}") from e
        except requests.HTTPError as e:
            logger.error(f"Tally answered HTTP {e.response.status_code if e.response is not None else '?'}")
            raise NetworkError(f"Tally responded with an error status: {e}") from e
        except requests.RequestException as e:
            logger.error(f"Tally request failed: {e}")
            raise NetworkError(f"Request failed: {e}") from e

        text = r.text
        ensure_status_ok(text)
        return text

    def test_connection(self) -> dict:
        """
        Probe Tally and report the outcome without raising.

        Returns:
            Dict with connection status and server info
        """
        try:
            response = self.post_xml(build_connection_probe(self.company), timeout=min(30, self.config.request_timeout))
        except NetworkError as e:
            return {
                "status": "failed",
                "url": self.base_url,
                "error": str(e),
            }
        if "<ENVELOPE" in response:
            return {
                "status": "connected",
                "url": self.base_url,
                "company": self.company,
                "response_length": len(response),
                "godowns_found": response.count("<GODOWN "),
            }
        return {
            "status": "connected_unknown",
            "url": self.base_url,
            "message": "Connected but unexpected response format",
        }

    def close(self):
        """Close every session opened by this client."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


_ERROR_PATTERNS = (
    r"<LINEERROR>(.*?)</LINEERROR>",
    r"<ERROR>(.*?)</ERROR>",
    r"<ERRORMSG>(.*?)</ERRORMSG>",
)


def extract_error(text: str) -> Optional[str]:
    """Extract an error message from a Tally response."""
    for pattern in _ERROR_PATTERNS:
        match = re.search(pattern, text, re.IGNORECASE | re.DOTALL)
        if match:
            msg = match.group(1).strip()
            msg = msg.replace("&apos;", "'").replace("&quot;", '"')
            msg = msg.replace("&lt;", "<").replace("&gt;", ">")
            msg = msg.replace("&amp;", "&")
            return msg
    if "Could not find" in text:
        match = re.search(r"(Could not find[^<]+)", text)
        if match:
            return match.group(1).strip().replace("&apos;", "'")
    return None


def ensure_status_ok(text: str) -> None:
    """
    Raise LedgerStatusError if Tally reports a failure.

    Display reports usually carry no STATUS; that is treated as success.
    Malformed XML is left for the decoder to reject.
    """
    status = re.search(r"<STATUS>\s*(-?\d+)\s*</STATUS>", text)
    if status and status.group(1) != "1":
        msg = extract_error(text)
        raise LedgerStatusError(f"Tally returned STATUS={status.group(1)}{(' - ' + msg) if msg else ''}")
    if status is None and re.search(r"<LINEERROR>", text):
        raise LedgerStatusError(f"Tally error: {extract_error(text)}")
