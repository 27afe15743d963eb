"""
Pickup date parsing for chat input

Supported:
- Relative: today, tomorrow, day after tomorrow, in 3 days (also leo / kesho)
- Weekdays: friday, next monday, this sat -> next occurrence after today
- ISO: 2026-01-15
- Day-first numeric: 15/01/2026, 15-01-2026, 15.01.2026
- Casual: December 15, 15 Dec, Dec 15 2026, 15th December
Rejected: past dates, dates beyond the booking horizon, numeric dates with
two-digit years (05/06/27), anything unrecognised
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Literal, Optional

import dateparser
import pytz

logger = logging.getLogger(__name__)

WEEKDAYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

RELATIVE_DAYS = {
    "today": 0, "leo": 0,
    "tomorrow": 1, "tmrw": 1, "kesho": 1,
    "day after tomorrow": 2, "the day after tomorrow": 2, "kesho kutwa": 2, "kesho kutwa yake": 2,
}

DATED_FORMATS = [
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%b %d %Y",      # Dec 15 2026
    "%B %d %Y",      # December 15 2026
    "%d %b %Y",      # 15 Dec 2026
    "%d %B %Y",      # 15 December 2026
    "%b %d, %Y",     # Dec 15, 2026
    "%B %d, %Y",     # December 15, 2026
]

YEARLESS_FORMATS = [
    "%b %d",         # Dec 15
    "%B %d",         # December 15
    "%d %b",         # 15 Dec
    "%d %B",         # 15 December
]

AMBIGUOUS_NUMERIC = re.compile(r"^\d{1,2}[/.-]\d{1,2}[/.-]\d{2}$")

ParseError = Literal["unrecognized", "past", "too_far", "ambiguous"]


@dataclass(frozen=True)
class DateParseResult:
    date: Optional[date] = None
    error: Optional[ParseError] = None

    @property
    def is_valid(self) -> bool:
        return self.date is not None and self.error is None


class DateParser:
    """Parse a single pickup date and check it is bookable"""

    def __init__(
        self,
        *,
        timezone: str = "Africa/Dar_es_Salaam",
        max_days_ahead: int = 365,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self.tz = pytz.timezone(timezone)
        self.max_days_ahead = max_days_ahead
        self._today_provider = today_provider

    def today(self) -> date:
        if self._today_provider is not None:
            return self._today_provider()
        return datetime.now(self.tz).date()

    def parse(self, text: str) -> DateParseResult:
        """Parse and validate a pickup date"""
        cleaned = self._clean(text)
        if not cleaned:
            return DateParseResult(error="unrecognized")

        if AMBIGUOUS_NUMERIC.match(cleaned):
            return DateParseResult(error="ambiguous")

        today = self.today()
        parsed = self.parse_single(cleaned, today=today)
        if parsed is None:
            return DateParseResult(error="unrecognized")
        if parsed < today:
            return DateParseResult(date=parsed, error="past")
        if (parsed - today).days > self.max_days_ahead:
            return DateParseResult(date=parsed, error="too_far")
        return DateParseResult(date=parsed)

    def parse_single(self, text: str, today: Optional[date] = None) -> Optional[date]:
        """Parse a date without bookability checks"""
        t = self._clean(text)
        today = today or self.today()

        if t in RELATIVE_DAYS:
            return today + timedelta(days=RELATIVE_DAYS[t])

        m = re.fullmatch(r"in (\d{1,3}) days?", t)
        if m:
            return today + timedelta(days=int(m.group(1)))

        m = re.fullmatch(r"(?:next |this |on |coming )?([a-z]+)", t)
        if m and m.group(1) in WEEKDAYS:
            ahead = (WEEKDAYS[m.group(1)] - today.weekday()) % 7 or 7
            return today + timedelta(days=ahead)

        for fmt in DATED_FORMATS:
            try:
                return datetime.strptime(t, fmt).date()
            except ValueError:
                continue

        for fmt in YEARLESS_FORMATS:
            try:
                d = datetime.strptime(f"{t} {today.year}", f"{fmt} %Y").date()
            except ValueError:
                continue
            # Month/day already gone this year -> next year
            if d < today:
                try:
                    d = d.replace(year=today.year + 1)
                except ValueError:
                    return None
            return d

        return self._parse_fallback(t, today)

    def _parse_fallback(self, t: str, today: date) -> Optional[date]:
        parsed = dateparser.parse(
            t,
            languages=["en"],
            settings={
                "PREFER_DATES_FROM": "future",
                "DATE_ORDER": "DMY",
                "RELATIVE_BASE": datetime.combine(today, time()),
            },
        )
        if parsed is None:
            return None
        logger.debug(f"dateparser fallback parsed {t!r} as {parsed.date()}")
        return parsed.date()

    @staticmethod
    def _clean(text: str) -> str:
        t = re.sub(r"\s+", " ", (text or "").strip().lower())
        t = t.rstrip(".!?")
        # Ordinal suffixes: 15th -> 15
        t = re.sub(r"\b(\d{1,2})(st|nd|rd|th)\b", r"\1", t)
        # "15 of december" -> "15 december"
        t = re.sub(r"\b(\d{1,2}) of\b", r"\1", t)
        return t
