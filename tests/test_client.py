"""
Tests for the Tally HTTP client: retries, error mapping and STATUS checks.
"""
import threading
from pathlib import Path
from unittest.mock import Mock
import pytest
import requests
from tally_stock_sync.client import TallyStockClient, ensure_status_ok, extract_error
from tally_stock_sync.config import StockSyncConfig
from tally_stock_sync.errors import LedgerStatusError, NetworkError

FIX = Path(__file__).parent / "fixtures"


def response(text="<ENVELOPE></ENVELOPE>", status_code=200):
    r = Mock()
    r.text = text
    r.status_code = status_code
    if status_code >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error", response=r)
    return r


@pytest.fixture
def client():
    config = StockSyncConfig(
        tally_url="http://tally.test:9000/",
        tally_company="Acme",
        retry_attempts=2,
        retry_wait=0,
    )
    c = TallyStockClient(config)
    c.session.post = Mock()
    yield c
    c.close()


class TestPostXml:
    """Tests for TallyStockClient.post_xml."""

    def test_success_returns_text(self, client):
        client.session.post.return_value = response("<ENVELOPE><X>1</X></ENVELOPE>")
        assert client.post_xml("<ENVELOPE/>") == "<ENVELOPE><X>1</X></ENVELOPE>"

        args, kwargs = client.session.post.call_args
        assert args[0] == "http://tally.test:9000"
        assert kwargs["data"] == b"<ENVELOPE/>"
        assert kwargs["timeout"] == 30

    def test_connection_error_retried_once_then_raised(self, client):
        client.session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError, match="Cannot connect"):
            client.post_xml("<ENVELOPE/>")
        assert client.session.post.call_count == 2

    def test_transient_failure_recovers(self, client):
        client.session.post.side_effect = [requests.Timeout("slow"), response()]
        assert client.post_xml("<ENVELOPE/>", timeout=5) == "<ENVELOPE></ENVELOPE>"
        assert client.session.post.call_args.kwargs["timeout"] == 5

    def test_timeout_maps_to_network_error(self, client):
        client.session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(NetworkError, match="timeout"):
            client.post_xml("<ENVELOPE/>")

    def test_http_error_not_retried(self, client):
        client.session.post.return_value = response("oops", status_code=500)
        with pytest.raises(NetworkError):
            client.post_xml("<ENVELOPE/>")
        assert client.session.post.call_count == 1

    def test_status_error_raises(self, client):
        client.session.post.return_value = response((FIX / "status_error.xml").read_text(encoding="utf-8"))
        with pytest.raises(LedgerStatusError, match="Could not find Report 'Godown Summary'"):
            client.post_xml("<ENVELOPE/>")

    def test_ledger_status_error_is_network_error(self):
        assert issubclass(LedgerStatusError, NetworkError)


class TestStatusChecks:
    """Tests for STATUS / LINEERROR detection."""

    def test_report_without_status_is_ok(self):
        ensure_status_ok("<ENVELOPE><DSPACCNAME/></ENVELOPE>")

    def test_status_one_is_ok(self):
        ensure_status_ok("<ENVELOPE><HEADER><STATUS>1</STATUS></HEADER></ENVELOPE>")

    def test_lineerror_without_status(self):
        with pytest.raises(LedgerStatusError):
            ensure_status_ok("<ENVELOPE><LINEERROR>Bad company</LINEERROR></ENVELOPE>")

    def test_extract_error_unescapes(self):
        assert extract_error("<ERROR>Tom &amp; Jerry&apos;s</ERROR>") == "Tom & Jerry's"
        assert extract_error("<ENVELOPE/>") is None


class TestConnection:
    """Tests for test_connection."""

    def test_connected(self, client):
        client.session.post.return_value = response(
            '<ENVELOPE><GODOWN NAME="Main Location"/><GODOWN NAME="Back Store"/></ENVELOPE>'
        )
        result = client.test_connection()
        assert result["status"] == "connected"
        assert result["company"] == "Acme"
        assert result["godowns_found"] == 2

    def test_failed(self, client):
        client.session.post.side_effect = requests.ConnectionError("refused")
        result = client.test_connection()
        assert result["status"] == "failed"
        assert "refused" in result["error"]

    def test_unexpected_response(self, client):
        client.session.post.return_value = response("hello")
        assert client.test_connection()["status"] == "connected_unknown"


class TestSessions:
    """Tests for per-thread session handling."""

    def test_each_thread_gets_its_own_session(self):
        c = TallyStockClient(StockSyncConfig(tally_url="http://tally.test:9000", tally_company="Acme"))
        main_session = c.session
        assert c.session is main_session
        assert main_session.headers["User-Agent"] == "tally-stock-sync/1.0"

        seen = []
        worker = threading.Thread(target=lambda: seen.append(c.session))
        worker.start()
        worker.join()
        assert seen[0] is not main_session

        c.close()
        assert c._sessions == []
        assert c.session is not main_session
        c.close()
