"""
synthetic.py — Deterministic stand-in data for district growth rates.

Used whenever the R-ONE statistics API is unavailable (no key, network
failure, missing rows). Every value is derived from an integer seed built out
of the district name, the period and the district's position in the list, so
the same district + period always yields the same numbers across runs.

No I/O and no wall-clock reads: callers pass `now` in.
"""

import math
from datetime import date
from enum import Enum

from dateutil.relativedelta import relativedelta


class Period(str, Enum):
    DAILY = "일"
    WEEKLY = "주"
    MONTHLY = "월"
    YEARLY = "연"

    @classmethod
    def parse(cls, raw: str) -> "Period":
        """Accept either the Korean tag ('월') or an English name ('month')."""
        raw = raw.strip()
        english = {
            "day": cls.DAILY, "daily": cls.DAILY,
            "week": cls.WEEKLY, "weekly": cls.WEEKLY,
            "month": cls.MONTHLY, "monthly": cls.MONTHLY,
            "year": cls.YEARLY, "yearly": cls.YEARLY,
        }
        if raw.lower() in english:
            return english[raw.lower()]
        return cls(raw)


# Calendar step for one period
PERIOD_STEP = {
    Period.DAILY: relativedelta(days=1),
    Period.WEEKLY: relativedelta(days=7),
    Period.MONTHLY: relativedelta(months=1),
    Period.YEARLY: relativedelta(years=1),
}

# Current growth rate spans [-5, 15)
CURRENT_RANGE = 20.0
CURRENT_OFFSET = -5.0

# Comparison key -> (seed offset, range, offset). Longer horizons spread wider.
# Seed offsets stay clear of seed+1..seed+5, which the history consumes.
COMPARISON_SPECS = {
    "전일": (100, 10.0, -2.0),
    "전주": (200, 12.0, -3.0),
    "전월": (300, 15.0, -4.0),
    "전년": (400, 20.0, -5.0),
}
COMPARISON_KEYS = tuple(COMPARISON_SPECS)

# History shape
HISTORY_PERIODS = 5          # past periods; the current one makes 6 points
BASE_RANGE_SCALE = 0.8       # fraction of |current| used as the swing
BASE_RANGE_FLOOR = 10.0
TREND_WEIGHT = 1.2
RANDOM_WEIGHT = 0.6
CLAMP_WEIGHT = 1.5


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def period_code(period: Period) -> int:
    return ord(period.value)


def derive_seed(entity_id: str, period: Period, index: int, offset: int = 0) -> int:
    """
    Stable integer seed for (district, period, position, offset).

    Cheap positional hash: first char code * 1000 + second char code * 100 +
    period code * 10 + index, plus offset. Names shorter than two characters
    count the missing characters as 0.
    """
    codes = [ord(c) for c in entity_id[:2]] + [0, 0]
    return codes[0] * 1000 + codes[1] * 100 + period_code(period) * 10 + index + offset


def sample(seed: int) -> float:
    """Map a seed to a reproducible value in [0, 1)."""
    x = math.sin(seed) * 10000
    frac = x - math.floor(x)
    # a tiny negative x can round frac up to exactly 1.0
    if frac >= 1.0:
        return 0.0
    return frac


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def current_value(seed: int) -> float:
    return sample(seed) * CURRENT_RANGE + CURRENT_OFFSET


def comparison_deltas(entity_id: str, period: Period, index: int) -> dict[str, float]:
    """All four comparison deltas, each from its own sub-seed."""
    deltas = {}
    for key, (seed_offset, spread, shift) in COMPARISON_SPECS.items():
        sub_seed = derive_seed(entity_id, period, index, offset=seed_offset)
        deltas[key] = sample(sub_seed) * spread + shift
    return deltas


def base_range(value: float) -> float:
    return max(abs(value) * BASE_RANGE_SCALE, BASE_RANGE_FLOOR)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def relative_label(i: int, period: Period) -> str:
    if i == 0:
        return {
            Period.DAILY: "오늘",
            Period.WEEKLY: "이번 주",
            Period.MONTHLY: "이번 달",
            Period.YEARLY: "올해",
        }[period]
    unit = {
        Period.DAILY: "일",
        Period.WEEKLY: "주",
        Period.MONTHLY: "개월",
        Period.YEARLY: "년",
    }[period]
    return f"{i}{unit} 전"


def date_label(d: date, period: Period) -> str:
    """Short Korean date: '10월 19일' for day/week, '2026년 10월' for month/year."""
    if period in (Period.DAILY, Period.WEEKLY):
        return f"{d.month}월 {d.day}일"
    return f"{d.year}년 {d.month}월"


def periods_ago(now: date, period: Period, i: int) -> date:
    step = PERIOD_STEP[period]
    return now - step * i


def history_values(value: float, seed: int) -> list[float]:
    """
    Raw (unrounded) history, oldest first, ending with `value` itself.

    Older points are pulled away from the current value against its sign so
    the line arrives at the current trend, plus seeded noise, clamped to
    value ± 1.5 * base_range.
    """
    swing = base_range(value)
    direction = 1 if value >= 0 else -1
    low = value - swing * CLAMP_WEIGHT
    high = value + swing * CLAMP_WEIGHT

    values = []
    for i in range(HISTORY_PERIODS, 0, -1):
        time_factor = i / HISTORY_PERIODS
        variation = (sample(seed + i) - 0.5) * 2
        trend_change = -direction * swing * time_factor * TREND_WEIGHT
        random_change = variation * swing * RANDOM_WEIGHT
        raw = value + trend_change + random_change
        values.append(max(low, min(high, raw)))
    values.append(value)
    return values


def generate_history(value: float, period: Period, seed: int, now: date) -> list[dict]:
    """Six history points (5 periods ago ... now), values rounded to 2 places."""
    values = history_values(value, seed)
    history = []
    for pos, raw in enumerate(values):
        i = HISTORY_PERIODS - pos
        history.append({
            "date": date_label(periods_ago(now, period, i), period),
            "label": relative_label(i, period),
            "value": round(raw, 2),
        })
    return history


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

def generate_entity_record(
    entity_id: str,
    period: Period,
    index: int,
    now: date | None = None,
) -> dict:
    """Full synthetic record for one district: current value, comparisons, history."""
    if now is None:
        now = date.today()
    seed = derive_seed(entity_id, period, index)
    value = current_value(seed)
    return {
        "name": entity_id,
        "currentValue": value,
        "comparison": comparison_deltas(entity_id, period, index),
        "history": generate_history(value, period, seed, now),
    }
