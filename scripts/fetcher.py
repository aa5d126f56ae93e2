"""
fetcher.py — Client for the Korea Real Estate Board (R-ONE) statistics API.

Looks up housing price index values per Seoul district and turns them into
growth-rate records with the same shape as synthetic.generate_entity_record.
Individual lookups that fail come back as None so the caller can fall back to
synthetic data for that district.

Usage (list the available statistics tables):
    python scripts/fetcher.py --api-key KEY [--tbl-code CODE]
"""

import argparse
import json
import math
import sys
from datetime import date

import requests
from bs4 import BeautifulSoup
from dateutil.relativedelta import relativedelta

from synthetic import HISTORY_PERIODS, Period, date_label, periods_ago, relative_label

API_BASE = "https://www.reb.or.kr/r-one/openapi"
TABLE_LIST_PATH = "SttsApiTbl.do"
TABLE_ITEMS_PATH = "SttsApiTblItm.do"
TABLE_DATA_PATH = "SttsApiTblData.do"

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, application/xml, text/xml",
}
TIMEOUT = 30

# Row field holding the numeric index value in table data responses
VALUE_FIELD = "DTA_VAL"

SEOUL_GU_LIST = [
    "강남구", "강동구", "강북구", "강서구", "관악구", "광진구", "구로구", "금천구",
    "노원구", "도봉구", "동대문구", "동작구", "마포구", "서대문구", "서초구", "성동구",
    "성북구", "송파구", "양천구", "영등포구", "용산구", "은평구", "종로구", "중구", "중랑구",
]

SEOUL_GU_CODE_MAP = {
    "강남구": "11680", "강동구": "11740", "강북구": "11305", "강서구": "11500",
    "관악구": "11620", "광진구": "11215", "구로구": "11530", "금천구": "11545",
    "노원구": "11350", "도봉구": "11320", "동대문구": "11230", "동작구": "11590",
    "마포구": "11440", "서대문구": "11410", "서초구": "11650", "성동구": "11200",
    "성북구": "11290", "송파구": "11710", "양천구": "11470", "영등포구": "11560",
    "용산구": "11170", "은평구": "11380", "종로구": "11110", "중구": "11140",
    "중랑구": "11260",
}

COMPARISON_STEPS = {
    "전일": relativedelta(days=1),
    "전주": relativedelta(days=7),
    "전월": relativedelta(months=1),
    "전년": relativedelta(years=1),
}


# ---------------------------------------------------------------------------
# Date / rate helpers
# ---------------------------------------------------------------------------

def format_date(d: date, period: Period) -> str:
    """API date parameter: YYYYMMDD for day/week, YYYYMM for month, YYYY for year."""
    if period == Period.MONTHLY:
        return d.strftime("%Y%m")
    if period == Period.YEARLY:
        return d.strftime("%Y")
    return d.strftime("%Y%m%d")


def get_comparison_date(d: date, comparison: str) -> date:
    return d - COMPARISON_STEPS[comparison]


def calculate_growth_rate(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def empty_response(code: str = "", message: str = "") -> dict:
    return {"data": [], "result": {"CODE": code, "MESSAGE": message}}


def parse_xml_response(text: str, row_tag: str = "row") -> dict:
    """Turn an R-ONE XML payload into {"data": [row dicts], "result": {...}}."""
    markup = text.encode("utf-8") if isinstance(text, str) else text
    soup = BeautifulSoup(markup, "xml")
    rows = []
    for row in soup.find_all(row_tag):
        rows.append({child.name: child.get_text() for child in row.find_all(recursive=False)})

    result = soup.find("RESULT")
    code = ""
    message = ""
    if result is not None:
        code_el = result.find("CODE")
        message_el = result.find("MESSAGE")
        code = code_el.get_text() if code_el else ""
        message = message_el.get_text() if message_el else ""
    return {"data": rows, "result": {"CODE": code, "MESSAGE": message}}


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def parse_json_response(payload: dict, root_key: str) -> dict:
    """
    Unwrap the R-ONE JSON envelope:
        {ROOT: [{"head": [{...}, {"RESULT": {...}}]}, {"row": [...]}]}
    ROOT may also be a single object, and "row" a single object.
    """
    body = payload.get(root_key)
    if body is None:
        # Already unwrapped, or an error envelope without the root key
        if "RESULT" in payload:
            return {"data": [], "result": payload["RESULT"]}
        return {"data": _as_list(payload.get("data")), "result": payload.get("result", {})}

    rows = []
    result = {"CODE": "", "MESSAGE": ""}
    for part in _as_list(body):
        if not isinstance(part, dict):
            continue
        if "row" in part and not rows:
            rows = _as_list(part["row"])
        for head in _as_list(part.get("head")):
            if isinstance(head, dict) and "RESULT" in head and not result["CODE"]:
                result = head["RESULT"]
    return {"data": rows, "result": result}


def parse_response(text: str, root_key: str) -> dict:
    """Detect XML vs JSON and parse either into the common shape."""
    stripped = text.strip()
    if stripped.startswith("<?xml") or stripped.startswith("<"):
        return parse_xml_response(stripped)
    try:
        payload = json.loads(stripped)
    except ValueError:
        return empty_response("ERROR", "unparseable response")
    if not isinstance(payload, dict):
        return empty_response("ERROR", "unexpected response shape")
    return parse_json_response(payload, root_key)


# ---------------------------------------------------------------------------
# API calls
# ---------------------------------------------------------------------------

def _get(path: str, params: dict, api_base: str) -> str:
    url = f"{api_base.rstrip('/')}/{path}"
    resp = requests.get(url, params=params, headers=HEADERS, timeout=TIMEOUT)
    resp.raise_for_status()
    return resp.text


def fetch_stats_table_list(api_key: str, api_base: str = API_BASE) -> dict:
    """List statistics tables (first 100)."""
    if not api_key:
        raise ValueError("api_key is required")
    params = {"key": api_key, "type": "json", "pIndex": "1", "pSize": "100"}
    return parse_response(_get(TABLE_LIST_PATH, params, api_base), "SttsApiTbl")


def fetch_stats_table_items(tbl_code: str, api_key: str, api_base: str = API_BASE) -> dict:
    """List the items (series) of one statistics table."""
    if not tbl_code or not tbl_code.strip():
        raise ValueError("tbl_code is required")
    if not api_key or not api_key.strip():
        raise ValueError("api_key is required")
    params = {
        "key": api_key,
        "tblCode": tbl_code,
        "type": "json",
        "pIndex": "1",
        "pSize": "100",
    }
    return parse_response(_get(TABLE_ITEMS_PATH, params, api_base), "SttsApiTblItm")


def fetch_stats_table_data(
    tbl_code: str,
    itm_code: str,
    date_str: str,
    area_code: str | None,
    api_key: str,
    api_base: str = API_BASE,
) -> dict:
    if not tbl_code or not itm_code:
        raise ValueError("tbl_code and itm_code are required")
    if not api_key:
        raise ValueError("api_key is required")
    params = {
        "key": api_key,
        "tblCode": tbl_code,
        "itmCode": itm_code,
        "date": date_str,
        "type": "json",
        "pIndex": "1",
        "pSize": "1000",
    }
    if area_code:
        params["areaCode"] = area_code
    return parse_response(_get(TABLE_DATA_PATH, params, api_base), "SttsApiTblData")


def extract_value(rows: list[dict], area_code: str | None = None) -> float | None:
    """First parseable index value, preferring rows tagged with area_code."""
    rows = [r for r in rows if isinstance(r, dict)]
    if area_code:
        tagged = [r for r in rows if r.get("CLS_ID") == area_code]
        if tagged:
            rows = tagged
    for row in rows:
        raw = row.get(VALUE_FIELD)
        if raw in (None, ""):
            continue
        try:
            value = float(str(raw).replace(",", ""))
        except ValueError:
            continue
        if math.isfinite(value):
            return value
    return None


def fetch_index_value(
    tbl_code: str,
    itm_code: str,
    date_str: str,
    area_code: str,
    api_key: str,
    api_base: str = API_BASE,
) -> float | None:
    """Index value for one district on one date, or None if it can't be resolved."""
    try:
        resp = fetch_stats_table_data(tbl_code, itm_code, date_str, area_code, api_key, api_base)
    except requests.RequestException as e:
        print(f"Warning: lookup failed for {area_code} @ {date_str}: {e}")
        return None
    return extract_value(resp["data"], area_code)


# ---------------------------------------------------------------------------
# District record
# ---------------------------------------------------------------------------

def fetch_district_record(
    gu_name: str,
    period: Period,
    tbl_code: str,
    itm_code: str,
    api_key: str,
    now: date,
    api_base: str = API_BASE,
) -> dict | None:
    """
    Real-data record for one district, or None when the current growth rate
    can't be resolved.

    comparison holds only the entries whose growth came out non-zero; history
    holds only the points whose two index lookups both resolved.
    """
    area_code = SEOUL_GU_CODE_MAP.get(gu_name)
    if area_code is None:
        return None

    cache: dict[str, float | None] = {}

    def lookup(d: date) -> float | None:
        key = format_date(d, period)
        if key not in cache:
            cache[key] = fetch_index_value(tbl_code, itm_code, key, area_code, api_key, api_base)
        return cache[key]

    index_now = lookup(now)
    index_prev = lookup(periods_ago(now, period, 1))
    if index_now is None or index_prev is None:
        return None
    value = calculate_growth_rate(index_now, index_prev)

    comparison = {}
    for key in COMPARISON_STEPS:
        previous = lookup(get_comparison_date(now, key))
        if previous is None:
            continue
        growth = calculate_growth_rate(index_now, previous)
        if growth != 0:
            comparison[key] = growth

    history = []
    for i in range(HISTORY_PERIODS, -1, -1):
        if i == 0:
            point_value = value
        else:
            cur = lookup(periods_ago(now, period, i))
            prev = lookup(periods_ago(now, period, i + 1))
            if cur is None or prev is None:
                continue
            point_value = calculate_growth_rate(cur, prev)
        history.append({
            "date": date_label(periods_ago(now, period, i), period),
            "label": relative_label(i, period),
            "value": round(point_value, 2),
        })

    return {
        "name": gu_name,
        "currentValue": value,
        "comparison": comparison,
        "history": history,
    }


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="List R-ONE statistics tables or table items.")
    parser.add_argument("--api-key", required=True, help="R-ONE open API key")
    parser.add_argument("--tbl-code", help="List the items of this table instead of all tables")
    parser.add_argument("--api-base", default=API_BASE, help="API base URL")
    args = parser.parse_args()

    try:
        if args.tbl_code:
            resp = fetch_stats_table_items(args.tbl_code, args.api_key, args.api_base)
        else:
            resp = fetch_stats_table_list(args.api_key, args.api_base)
    except requests.RequestException as e:
        print(f"ERROR: API request failed: {e}", file=sys.stderr)
        sys.exit(1)

    result = resp["result"]
    print(f"Result: {result.get('CODE', '')} {result.get('MESSAGE', '')}".rstrip())
    print(f"Rows: {len(resp['data'])}")
    for row in resp["data"]:
        print(json.dumps(row, ensure_ascii=False))


if __name__ == "__main__":
    main()
