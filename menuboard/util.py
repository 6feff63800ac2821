import re
from datetime import date, datetime, timedelta
from typing import Optional

WEEKDAYS_KO = ("월요일", "화요일", "수요일", "목요일", "금요일", "토요일", "일요일")

_date_code_re = re.compile(r"^\d{6}$")


def is_date_code(value: str) -> bool:
    return bool(value) and bool(_date_code_re.match(value))


def to_date_code(d: date) -> str:
    return d.strftime("%y%m%d")


def from_date_code(code: str) -> date:
    return datetime.strptime(code, "%y%m%d").date()


def korean_long_date(code: str) -> str:
    """'250826' -> '2025년 8월 26일 화요일'. Invalid calendar dates come back unchanged."""
    try:
        d = from_date_code(code)
    except ValueError:
        return code
    return f"{d.year}년 {d.month}월 {d.day}일 {WEEKDAYS_KO[d.weekday()]}"


def default_query_date(now: Optional[datetime] = None, cutoff_hour: int = 15) -> str:
    # after lunch service the next day's board is the interesting one
    now = now or datetime.now()
    d = now.date()
    if now.hour >= cutoff_hour:
        d = d + timedelta(days=1)
    return to_date_code(d)
