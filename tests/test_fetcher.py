"""Tests for the R-ONE API client: parsing, date helpers, district records."""

import json
from datetime import date

import pytest
import requests

import fetcher
from fetcher import (
    SEOUL_GU_CODE_MAP,
    SEOUL_GU_LIST,
    calculate_growth_rate,
    extract_value,
    fetch_district_record,
    fetch_index_value,
    fetch_stats_table_data,
    fetch_stats_table_items,
    fetch_stats_table_list,
    format_date,
    get_comparison_date,
    parse_json_response,
    parse_response,
    parse_xml_response,
)
from synthetic import Period

NOW = date(2026, 10, 19)

XML_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<SttsApiTblData>
  <head>
    <list_total_count>2</list_total_count>
    <RESULT>
      <CODE>INFO-000</CODE>
      <MESSAGE>정상 처리되었습니다</MESSAGE>
    </RESULT>
  </head>
  <row>
    <CLS_ID>11680</CLS_ID>
    <CLS_NM>강남구</CLS_NM>
    <DTA_VAL>104.25</DTA_VAL>
  </row>
  <row>
    <CLS_ID>11740</CLS_ID>
    <CLS_NM>강동구</CLS_NM>
    <DTA_VAL>99.10</DTA_VAL>
  </row>
</SttsApiTblData>
"""


class FakeResponse:

    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestDateHelpers:

    def test_format_date(self) -> None:
        assert format_date(NOW, Period.DAILY) == "20261019"
        assert format_date(NOW, Period.WEEKLY) == "20261019"
        assert format_date(NOW, Period.MONTHLY) == "202610"
        assert format_date(NOW, Period.YEARLY) == "2026"

    def test_comparison_dates(self) -> None:
        assert get_comparison_date(NOW, "전일") == date(2026, 10, 18)
        assert get_comparison_date(NOW, "전주") == date(2026, 10, 12)
        assert get_comparison_date(date(2026, 3, 31), "전월") == date(2026, 2, 28)
        assert get_comparison_date(NOW, "전년") == date(2025, 10, 19)

    def test_growth_rate(self) -> None:
        assert calculate_growth_rate(110.0, 100.0) == pytest.approx(10.0)
        assert calculate_growth_rate(95.0, 100.0) == pytest.approx(-5.0)
        assert calculate_growth_rate(5.0, 0.0) == 0.0


class TestDistrictTables:

    def test_every_district_has_a_code(self) -> None:
        assert len(SEOUL_GU_LIST) == 25
        assert set(SEOUL_GU_LIST) == set(SEOUL_GU_CODE_MAP)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParsing:

    def test_xml_rows_and_result(self) -> None:
        parsed = parse_xml_response(XML_BODY)
        assert parsed["result"] == {"CODE": "INFO-000", "MESSAGE": "정상 처리되었습니다"}
        assert len(parsed["data"]) == 2
        assert parsed["data"][0]["CLS_NM"] == "강남구"
        assert parsed["data"][1]["DTA_VAL"] == "99.10"

    def test_json_list_envelope(self) -> None:
        payload = {
            "SttsApiTbl": [
                {"head": [{"list_total_count": 1}, {"RESULT": {"CODE": "INFO-000", "MESSAGE": "ok"}}]},
                {"row": [{"STATBL_ID": "A_2024_00045", "STATBL_NM": "주간 아파트 가격지수"}]},
            ]
        }
        parsed = parse_json_response(payload, "SttsApiTbl")
        assert parsed["result"]["CODE"] == "INFO-000"
        assert parsed["data"] == [{"STATBL_ID": "A_2024_00045", "STATBL_NM": "주간 아파트 가격지수"}]

    def test_json_object_envelope_with_single_row(self) -> None:
        payload = {
            "SttsApiTblItm": {
                "head": {"RESULT": {"CODE": "INFO-000", "MESSAGE": "ok"}},
                "row": {"ITM_ID": "100001", "ITM_NM": "지수"},
            }
        }
        parsed = parse_json_response(payload, "SttsApiTblItm")
        assert parsed["data"] == [{"ITM_ID": "100001", "ITM_NM": "지수"}]
        assert parsed["result"]["MESSAGE"] == "ok"

    def test_json_error_envelope(self) -> None:
        payload = {"RESULT": {"CODE": "ERROR-290", "MESSAGE": "인증키가 유효하지 않습니다."}}
        parsed = parse_json_response(payload, "SttsApiTbl")
        assert parsed["data"] == []
        assert parsed["result"]["CODE"] == "ERROR-290"

    def test_parse_response_detects_format(self) -> None:
        assert len(parse_response(XML_BODY, "SttsApiTblData")["data"]) == 2
        body = json.dumps({"SttsApiTblData": [{"row": [{"DTA_VAL": "1"}]}]})
        assert parse_response(body, "SttsApiTblData")["data"] == [{"DTA_VAL": "1"}]

    def test_parse_response_garbage(self) -> None:
        parsed = parse_response("not a payload", "SttsApiTbl")
        assert parsed["data"] == []
        assert parsed["result"]["CODE"] == "ERROR"

    def test_extract_value_prefers_area(self) -> None:
        rows = parse_xml_response(XML_BODY)["data"]
        assert extract_value(rows, "11740") == pytest.approx(99.10)
        assert extract_value(rows) == pytest.approx(104.25)
        assert extract_value([{"DTA_VAL": ""}, {"DTA_VAL": "1,024.5"}]) == pytest.approx(1024.5)
        assert extract_value([{"DTA_VAL": "-"}]) is None

    def test_extract_value_skips_bad_rows(self) -> None:
        assert extract_value(["oops", None, {"DTA_VAL": "2.5"}], "11680") == pytest.approx(2.5)
        assert extract_value([{"DTA_VAL": "NaN"}, {"DTA_VAL": "inf"}, {"DTA_VAL": "-Infinity"}]) is None
        assert extract_value([{"DTA_VAL": "nan"}, {"DTA_VAL": "101.5"}]) == pytest.approx(101.5)


# ---------------------------------------------------------------------------
# API calls
# ---------------------------------------------------------------------------

class TestApiCalls:

    def test_table_data_request(self, monkeypatch) -> None:
        calls = []

        def fake_get(url, params=None, headers=None, timeout=None):
            calls.append((url, params))
            return FakeResponse(XML_BODY)

        monkeypatch.setattr(fetcher.requests, "get", fake_get)
        parsed = fetch_stats_table_data("T1", "I1", "202610", "11680", "KEY")
        assert len(parsed["data"]) == 2
        url, params = calls[0]
        assert url == "https://www.reb.or.kr/r-one/openapi/SttsApiTblData.do"
        assert params["areaCode"] == "11680"
        assert params["date"] == "202610"
        assert params["key"] == "KEY"

    def test_table_list_request(self, monkeypatch) -> None:
        body = json.dumps({"SttsApiTbl": [{"row": [{"STATBL_ID": "X"}]}]})
        monkeypatch.setattr(fetcher.requests, "get", lambda *a, **kw: FakeResponse(body))
        assert fetch_stats_table_list("KEY", "http://example.test/")["data"] == [{"STATBL_ID": "X"}]

    def test_required_arguments(self) -> None:
        with pytest.raises(ValueError):
            fetch_stats_table_items("", "KEY")
        with pytest.raises(ValueError):
            fetch_stats_table_items("T1", " ")
        with pytest.raises(ValueError):
            fetch_stats_table_list("")

    def test_http_error_propagates(self, monkeypatch) -> None:
        monkeypatch.setattr(fetcher.requests, "get", lambda *a, **kw: FakeResponse("", 500))
        with pytest.raises(requests.HTTPError):
            fetch_stats_table_list("KEY")

    def test_index_lookup_failure_is_none(self, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(fetcher.requests, "get", boom)
        assert fetch_index_value("T1", "I1", "202610", "11680", "KEY") is None


# ---------------------------------------------------------------------------
# District record
# ---------------------------------------------------------------------------

INDEX_BY_MONTH = {
    "202610": 110.0,
    "202609": 100.0,
    "202608": 100.0,
    "202607": 95.0,
    "202606": 95.0,
    "202605": 90.0,
    "202604": 90.0,
    "202510": 88.0,
}


def _patch_index(monkeypatch, values: dict) -> None:
    def fake_lookup(tbl_code, itm_code, date_str, area_code, api_key, api_base=None):
        return values.get(date_str)

    monkeypatch.setattr(fetcher, "fetch_index_value", fake_lookup)


class TestDistrictRecord:

    def test_full_record(self, monkeypatch) -> None:
        _patch_index(monkeypatch, INDEX_BY_MONTH)
        record = fetch_district_record("강남구", Period.MONTHLY, "T1", "I1", "KEY", NOW)
        assert record["name"] == "강남구"
        assert record["currentValue"] == pytest.approx(10.0)
        # day/week comparisons resolve to the same month and drop out as zero
        assert record["comparison"] == pytest.approx({"전월": 10.0, "전년": 25.0})
        assert len(record["history"]) == 6
        assert record["history"][0]["value"] == 0.0
        assert record["history"][1]["value"] == pytest.approx(5.56)
        assert record["history"][-1]["value"] == round(record["currentValue"], 2)
        assert record["history"][-1]["label"] == "이번 달"

    def test_missing_history_points_are_dropped(self, monkeypatch) -> None:
        values = dict(INDEX_BY_MONTH)
        del values["202605"]
        _patch_index(monkeypatch, values)
        record = fetch_district_record("강남구", Period.MONTHLY, "T1", "I1", "KEY", NOW)
        assert len(record["history"]) == 4
        assert record["history"][0]["label"] == "3개월 전"

    def test_unresolved_current_value(self, monkeypatch) -> None:
        values = dict(INDEX_BY_MONTH)
        del values["202609"]
        _patch_index(monkeypatch, values)
        assert fetch_district_record("강남구", Period.MONTHLY, "T1", "I1", "KEY", NOW) is None

    def test_unknown_district(self, monkeypatch) -> None:
        _patch_index(monkeypatch, INDEX_BY_MONTH)
        assert fetch_district_record("해운대구", Period.MONTHLY, "T1", "I1", "KEY", NOW) is None

    def test_each_date_is_looked_up_once(self, monkeypatch) -> None:
        seen = []

        def fake_lookup(tbl_code, itm_code, date_str, area_code, api_key, api_base=None):
            seen.append(date_str)
            return INDEX_BY_MONTH.get(date_str)

        monkeypatch.setattr(fetcher, "fetch_index_value", fake_lookup)
        fetch_district_record("강남구", Period.MONTHLY, "T1", "I1", "KEY", NOW)
        assert len(seen) == len(set(seen))
