"""
Tests for the stock sync orchestration and CLI.
"""
import csv
import json
import threading
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock
import pytest
from tally_stock_sync.client import TallyStockClient
from tally_stock_sync.config import StockSyncConfig
from tally_stock_sync.errors import NetworkError, ParseError
from tally_stock_sync.sync import StockSync, export_csv, main

FIX = Path(__file__).parent / "fixtures"


def read(p): return (FIX / p).read_text(encoding="utf-8")


RESPONSES = {
    "Godown Summary": "godown_report.xml",
    "Stock Item-Wise Summary": "price_list.xml",
    "Stock Summary": "price_list.xml",
}


def answer_by_report(xml_request):
    for report_name, fixture in RESPONSES.items():
        if f"<REPORTNAME>{report_name}</REPORTNAME>" in xml_request:
            return read(fixture)
    raise AssertionError(f"unexpected request: {xml_request}")


@pytest.fixture
def config():
    return StockSyncConfig(tally_url="http://tally.test:9000", tally_company="Acme", retry_wait=0)


@pytest.fixture
def client():
    c = Mock(spec=TallyStockClient)
    c.post_xml.side_effect = answer_by_report
    return c


class TestSynchronize:
    """Tests for StockSync.synchronize."""

    def test_fetches_both_reports_and_merges(self, config, client):
        with StockSync(config, client=client) as sync:
            result = sync.synchronize()

        assert client.post_xml.call_count == 2
        assert result.company_name == "Acme"
        by_name = {r.name: r for r in result.records}
        assert list(by_name) == ["Fevicol 1kg", "Asian Paints 1L", "Sample Item"]
        assert by_name["Fevicol 1kg"].mrp == Decimal("295.00")
        assert by_name["Fevicol 1kg"].company_name == "Acme"
        assert [g.godown_name for g in by_name["Fevicol 1kg"].godown_allocations] == ["Main Location", "Back Store"]
        assert "Price Only Item" not in by_name
        client.close.assert_called_once()

    def test_reports_are_fetched_concurrently(self, config, client):
        both_in_flight = threading.Barrier(2, timeout=5)

        def wait_for_other_request(xml_request):
            both_in_flight.wait()
            return answer_by_report(xml_request)

        client.post_xml.side_effect = wait_for_other_request
        result = StockSync(config, client=client).synchronize()
        assert len(result.records) == 3
        assert not both_in_flight.broken

    def test_company_argument_overrides_config(self, config, client):
        sync = StockSync(config, client=client)
        result = sync.synchronize("Other Co")
        assert result.company_name == "Other Co"
        for call in client.post_xml.call_args_list:
            assert "<SVCURRENTCOMPANY>Other Co</SVCURRENTCOMPANY>" in call.args[0]

    def test_one_failed_request_aborts(self, config, client):
        def fail_price_list(xml_request):
            if "Stock Item-Wise Summary" in xml_request:
                raise NetworkError("Cannot connect to Tally")
            return answer_by_report(xml_request)

        client.post_xml.side_effect = fail_price_list
        with pytest.raises(NetworkError):
            StockSync(config, client=client).synchronize()

    def test_malformed_response_aborts(self, config, client):
        def malformed_godowns(xml_request):
            if "Godown Summary" in xml_request:
                return read("malformed.xml")
            return answer_by_report(xml_request)

        client.post_xml.side_effect = malformed_godowns
        with pytest.raises(ParseError):
            StockSync(config, client=client).synchronize()

    def test_report_name_override(self, client):
        config = StockSyncConfig(tally_company="Acme", godown_report="My Godowns")
        client.post_xml.side_effect = lambda xml_request: read("godown_report.xml")
        StockSync(config, client=client).fetch_report_xml("godown-list")
        assert "<REPORTNAME>My Godowns</REPORTNAME>" in client.post_xml.call_args.args[0]

    def test_save_xml(self, config, client, tmp_path):
        sync = StockSync(config, client=client)
        sync.save_xml_dir = tmp_path / "raw"
        sync.fetch_report_xml("godown-list")
        assert (tmp_path / "raw" / "debug_godown-list.xml").read_text(encoding="utf-8") == read("godown_report.xml")


class TestOffline:
    """Tests for merging saved responses and exporting."""

    def test_merge_responses(self, config, client):
        result = StockSync(config, client=client).merge_responses(
            read("godown_report.xml"), read("price_list.xml")
        )
        client.post_xml.assert_not_called()
        assert len(result.records) == 3
        payload = result.as_payload()
        assert payload[0]["itemName"] == "Fevicol 1kg"
        assert payload[0]["company"] == "Acme"

    def test_stock_summary(self, config, client):
        summary = StockSync(config, client=client).fetch_stock_summary()
        assert [r.name for r in summary.records][0] == "Fevicol 1kg"
        assert "<REPORTNAME>Stock Summary</REPORTNAME>" in client.post_xml.call_args.args[0]

    def test_export_csv(self, config, client, tmp_path):
        result = StockSync(config, client=client).merge_responses(
            read("godown_report.xml"), read("price_list.xml")
        )
        out = tmp_path / "stock.csv"
        rows = export_csv(result.records, out)

        with out.open(encoding="utf-8", newline="") as f:
            data = list(csv.DictReader(f))
        assert rows == len(data) == sum(max(1, len(r.godown_allocations)) for r in result.records)
        assert data[0]["item_name"] == "Fevicol 1kg"
        assert data[0]["godown"] == "Main Location"
        assert data[0]["godown_quantity"] == "8"


class TestMain:
    """Tests for the command line entry point."""

    def test_offline_export_json(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TALLY_COMPANY", "Acme")
        out = tmp_path / "stock.json"
        code = main([
            "--godown-file", str(FIX / "godown_report.xml"),
            "--price-file", str(FIX / "price_list.xml"),
            "--export-json", str(out),
            "--preview", "1",
        ])
        assert code == 0
        payload = json.loads(out.read_text(encoding="utf-8"))
        assert [p["itemName"] for p in payload] == ["Fevicol 1kg", "Asian Paints 1L", "Sample Item"]
        assert payload[0]["godown"] == [
            {"name": "Main Location", "quantity": 8.0},
            {"name": "Back Store", "quantity": 4.0},
        ]

    def test_files_must_come_together(self, monkeypatch):
        monkeypatch.setenv("TALLY_COMPANY", "Acme")
        assert main(["--godown-file", str(FIX / "godown_report.xml")]) == 1

    def test_invalid_config(self, monkeypatch):
        monkeypatch.setenv("TALLY_COMPANY", " ")
        assert main(["--godown-file", "x", "--price-file", "y"]) == 1


def test_config_validate():
    config = StockSyncConfig(tally_company="", request_timeout=0, retry_attempts=0, pieces_per_box=0)
    errors = config.validate()
    assert "TALLY_COMPANY is required" in errors
    assert len(errors) == 4
    assert StockSyncConfig(tally_company="Acme").validate() == []
