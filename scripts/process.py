#!/usr/bin/env python3
"""
process.py — Builds per-district housing price growth records, writes public/data.json.

For the chosen period, every Seoul district gets one record:
  - current growth rate
  - comparison deltas (vs previous day / week / month / year)
  - 6-point history (5 periods ago → now)

With an API key plus table/item codes, records come from the R-ONE API and
any district whose lookups fail falls back to deterministic synthetic data.
Without them, every record is synthetic.

Usage:
    python scripts/process.py [--period 월] [--all-periods] [--xlsx out.xlsx]
"""

import argparse
import json
import math
import os
import sys
from datetime import date, datetime, timezone
from pathlib import Path

from openpyxl import Workbook

from fetcher import API_BASE, SEOUL_GU_LIST, fetch_district_record
from synthetic import (
    COMPARISON_KEYS,
    Period,
    derive_seed,
    generate_entity_record,
    generate_history,
)

REPO_ROOT = Path(__file__).resolve().parent.parent
PUBLIC_DIR = REPO_ROOT / "public"
DATA_JSON_PATH = PUBLIC_DIR / "data.json"

API_KEY_ENV = "REB_API_KEY"
DEFAULT_PERIOD = Period.MONTHLY

# Choropleth scale: (lower bound, color), first match wins
COLOR_SCALE = [
    (10, "#800026"),
    (5, "#BD0026"),
    (2, "#E31A1C"),
    (0, "#FC4E2A"),
    (-2, "#FEB24C"),
    (-5, "#FED976"),
    (-10, "#FFEDA0"),
]
COLOR_BELOW_SCALE = "#1F78B4"
COLOR_NO_DATA = "#CCCCCC"

TOP_N = 3


# ---------------------------------------------------------------------------
# Color classification
# ---------------------------------------------------------------------------

def classify_color(value: float | None) -> str:
    if value is None or math.isnan(value) or value == 0:
        return COLOR_NO_DATA
    for bound, color in COLOR_SCALE:
        if value > bound:
            return color
    return COLOR_BELOW_SCALE


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def build_records(
    period: Period,
    api_key: str | None = None,
    tbl_code: str | None = None,
    itm_code: str | None = None,
    now: date | None = None,
    api_base: str = API_BASE,
) -> list[dict]:
    """
    One record per district, in SEOUL_GU_LIST order (the index feeds the seed).
    Each record is tagged with source = "api" or "synthetic".
    """
    if now is None:
        now = date.today()
    use_api = bool(api_key and tbl_code and itm_code)

    records = []
    fallbacks = 0
    for index, gu_name in enumerate(SEOUL_GU_LIST):
        record = None
        if use_api:
            record = fetch_district_record(
                gu_name, period, tbl_code, itm_code, api_key, now, api_base
            )
            if record is None:
                print(f"Warning: no API data for {gu_name}, using synthetic values.")
                fallbacks += 1

        if record is None:
            record = generate_entity_record(gu_name, period, index, now)
            record["source"] = "synthetic"
        else:
            if len(record["history"]) < 2:
                # no past period resolved; same seed scheme as the synthetic path
                seed = derive_seed(gu_name, period, index)
                record["history"] = generate_history(record["currentValue"], period, seed, now)
            record["source"] = "api"
        records.append(record)

    if use_api:
        print(f"Fetched {len(records) - fallbacks}/{len(records)} districts from API "
              f"({fallbacks} synthetic fallbacks).")
    return records


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def summarize(records: list[dict]) -> dict:
    """Citywide average / extremes and the biggest risers and fallers."""
    if not records:
        return {
            "average": 0.0,
            "min": 0.0,
            "max": 0.0,
            "rising": 0,
            "falling": 0,
            "topRisers": [],
            "topFallers": [],
        }

    values = [r["currentValue"] for r in records]
    ranked = sorted(records, key=lambda r: r["currentValue"], reverse=True)
    top_risers = [
        {"name": r["name"], "currentValue": round(r["currentValue"], 2)}
        for r in ranked[:TOP_N] if r["currentValue"] > 0
    ]
    top_fallers = [
        {"name": r["name"], "currentValue": round(r["currentValue"], 2)}
        for r in reversed(ranked[-TOP_N:]) if r["currentValue"] < 0
    ]
    return {
        "average": round(sum(values) / len(values), 2),
        "min": round(min(values), 2),
        "max": round(max(values), 2),
        "rising": sum(1 for v in values if v > 0),
        "falling": sum(1 for v in values if v < 0),
        "topRisers": top_risers,
        "topFallers": top_fallers,
    }


def build_output(period: Period, records: list[dict], now_utc: datetime | None = None) -> dict:
    if now_utc is None:
        now_utc = datetime.now(timezone.utc)

    districts_out = []
    for r in records:
        districts_out.append({
            "name": r["name"],
            "currentValue": round(r["currentValue"], 4),
            "color": classify_color(r["currentValue"]),
            "comparison": {k: round(v, 4) for k, v in r["comparison"].items()},
            "history": r["history"],
            "source": r.get("source", "synthetic"),
        })

    synthetic_count = sum(1 for r in districts_out if r["source"] == "synthetic")
    return {
        "meta": {
            "lastUpdated": now_utc.strftime("%Y-%m-%d"),
            "lastUpdatedISO": now_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "period": period.value,
            "periodName": period.name.lower(),
            "districtCount": len(districts_out),
            "syntheticCount": synthetic_count,
            "synthetic": synthetic_count == len(districts_out),
        },
        "overall": summarize(records),
        "districts": districts_out,
    }


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def write_json(output: dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(output, f, indent=2, ensure_ascii=False)
    print(f"Wrote {path}")


def write_xlsx(records: list[dict], path: Path, period: Period = DEFAULT_PERIOD) -> None:
    """One row per district: name, current value, the four comparisons, source."""
    wb = Workbook()
    ws = wb.active
    ws.title = f"{period.value} 상승률"
    ws.append(["구", "상승률"] + [f"{k} 대비" for k in COMPARISON_KEYS] + ["출처"])
    for r in records:
        ws.append(
            [r["name"], round(r["currentValue"], 2)]
            + [
                round(r["comparison"][k], 2) if k in r["comparison"] else None
                for k in COMPARISON_KEYS
            ]
            + [r.get("source", "synthetic")]
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    print(f"Wrote {path}")


def period_json_path(base: Path, period: Period) -> Path:
    return base.with_name(f"{base.stem}-{period.name.lower()}{base.suffix}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Build Seoul district growth data → public/data.json")
    parser.add_argument("--period", type=Period.parse, default=DEFAULT_PERIOD,
                        help="일/주/월/연 or day/week/month/year (default: 월)")
    parser.add_argument("--all-periods", action="store_true",
                        help="Write one data-<period>.json per period")
    parser.add_argument("--api-key", default=None,
                        help=f"R-ONE API key (default: ${API_KEY_ENV})")
    parser.add_argument("--tbl-code", help="R-ONE statistics table code")
    parser.add_argument("--itm-code", help="R-ONE statistics item code")
    parser.add_argument("--api-base", default=API_BASE, help="API base URL")
    parser.add_argument("--output", help="Output JSON path (default: public/data.json)")
    parser.add_argument("--xlsx", help="Also write the district table to this .xlsx path")
    args = parser.parse_args()

    api_key = args.api_key if args.api_key is not None else os.environ.get(API_KEY_ENV, "")
    if api_key and not (args.tbl_code and args.itm_code):
        print("Warning: API key set but --tbl-code/--itm-code missing — using synthetic data.")
    elif not api_key:
        print("No API key configured — using synthetic data.")

    output_path = Path(args.output) if args.output else DATA_JSON_PATH
    periods = list(Period) if args.all_periods else [args.period]
    now_utc = datetime.now(timezone.utc)
    today = now_utc.date()

    for period in periods:
        print(f"Building records for period {period.value} ({period.name.lower()}) ...")
        records = build_records(
            period,
            api_key=api_key,
            tbl_code=args.tbl_code,
            itm_code=args.itm_code,
            now=today,
            api_base=args.api_base,
        )
        output = build_output(period, records, now_utc)
        path = period_json_path(output_path, period) if args.all_periods else output_path
        try:
            write_json(output, path)
            if args.xlsx:
                xlsx_path = Path(args.xlsx)
                if args.all_periods:
                    xlsx_path = period_json_path(xlsx_path, period)
                write_xlsx(records, xlsx_path, period)
        except OSError as e:
            print(f"ERROR: could not write output: {e}", file=sys.stderr)
            sys.exit(1)

        overall = output["overall"]
        print(
            f"Summary: {period.value} | "
            f"Average: {overall['average']:+.2f}% | "
            f"Rising: {overall['rising']}/{output['meta']['districtCount']} | "
            f"Synthetic: {output['meta']['syntheticCount']}"
        )


if __name__ == "__main__":
    main()
