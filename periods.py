from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def label(self) -> str:
        if self.start.day == 1 and self.end == month_end(
            self.start.year, self.start.month
        ):
            return self.start.strftime("%B %Y")
        return f"{self.start.isoformat()} to {self.end.isoformat()}"

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    return Period(
        f"{year:04d}-{month:02d}", date(year, month, 1), month_end(year, month)
    )


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def add_months(d: date, count: int) -> date:
    total = d.year * 12 + (d.month - 1) + count
    return date(total // 12, total % 12 + 1, 1)


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or date.today()
    if not value:
        return month_period(today.year, today.month)
    try:
        year_str, month_str = value.split("-", 1)
        year = int(year_str)
        month = int(month_str)
    except ValueError as exc:
        raise ValueError("Month must be formatted as YYYY-MM") from exc
    return month_period(year, month)
