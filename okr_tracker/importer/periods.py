"""
Free-text time period parsing.

Labels seen in exports include "Q1 2024", "2024 Q1", "Quarter 1 FY24", "1Q24",
"FY24 Q1", "Annual 2024", "FY 2024", "2024" and "March 2024". A label that
matches an entry of the export's own time-period list is resolved from that
entry's dates first.
"""
import re
from datetime import date, timedelta
from typing import Iterable, List, NamedTuple, Optional

from okr_tracker.app_logger import get_logger
from okr_tracker.importer.records import SourcePeriod

logger = get_logger(__name__)

# Periods longer than this are not a single quarter
_QUARTER_SPAN = timedelta(days=100)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_YEAR = r"(\d{4}|\d{2})"

# (pattern, group index of quarter or None, group index of year), tried in order
_CASCADE = (
    # "Q1 2024", "Q1-2024", "Q3 FY24"
    (re.compile(r"\bQ([1-4])\s*[-/,]?\s*(?:FY\s*)?'?" + _YEAR + r"\b", re.I), 1, 2),
    # "2024 Q1", "2024-Q1"
    (re.compile(r"\b(\d{4})\s*[-/]?\s*Q([1-4])\b", re.I), 2, 1),
    # "Quarter 1 2024", "Quarter 3, FY24"
    (re.compile(r"\bQuarter\s*([1-4])\s*[,-]?\s*(?:FY\s*)?'?" + _YEAR + r"\b", re.I), 1, 2),
    # "1Q24", "1Q 2024"
    (re.compile(r"\b([1-4])Q\s*'?" + _YEAR + r"\b", re.I), 1, 2),
    # "FY24 Q1", "FY2024-Q3"
    (re.compile(r"\bFY\s*'?" + _YEAR + r"\s*[-/]?\s*Q([1-4])\b", re.I), 2, 1),
    # "Annual 2024", "FY 2024", "FY24"
    (re.compile(r"\b(?:Annual|FY)\s*'?" + _YEAR + r"\b", re.I), None, 1),
    # "2024"
    (re.compile(r"^\s*(\d{4})\s*$"), None, 1),
)

_MONTH_YEAR = re.compile(
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?\s*,?\s*(\d{4})\b",
    re.I,
)

# Last resort: any four-digit year, plus a digit next to a quarter marker
_ANY_YEAR = re.compile(r"(?<!\d)(\d{4})(?!\d)")
_ANY_QUARTER = re.compile(r"(?:Quarter\s*|Q\s*)([1-4])(?!\d)|(?<!\d)([1-4])\s*Q(?![a-z])", re.I)


class ParsedPeriod(NamedTuple):
    quarter: Optional[int]
    year: int


def normalize_year(raw: str) -> int:
    """Two-digit years are taken to be in the 2000s."""
    year = int(raw)
    return year + 2000 if len(raw) <= 2 else year


def quarter_for_month(month: int, fiscal_year_start_month: int = 1) -> int:
    """Quarter (1..4) of a calendar month within a fiscal year."""
    return ((month - fiscal_year_start_month) % 12) // 3 + 1


class PeriodParser:
    """
    Turns period labels into (quarter, year).

    Parsing never raises: a label nothing understands yields
    (None, current year) and appends one warning to ``warnings``.
    """

    def __init__(self, periods: Iterable[SourcePeriod] = (), warnings: Optional[List[str]] = None,
                 fiscal_year_start_month: int = 1, today: Optional[date] = None):
        self.warnings = warnings if warnings is not None else []
        self.fiscal_year_start_month = fiscal_year_start_month
        self.today = today or date.today()
        self._by_label = {}
        self._by_id = {}
        for period in periods:
            if period.start_date is None:
                continue
            self._by_label.setdefault(period.label, period)
            if period.id is not None:
                self._by_id.setdefault(period.id, period)

    def parse(self, label: Optional[str], period_id=None) -> ParsedPeriod:
        text = (label or "").strip()

        known = self._by_label.get(text) if text else None
        if known is None and period_id is not None:
            known = self._by_id.get(period_id)
        if known is not None:
            return self._from_period(known)

        parsed = self._match_text(text) if text else None
        if parsed is not None:
            return parsed

        message = f"Could not parse time period: {label!r}" if text else "Missing time period"
        self.warnings.append(message)
        logger.debug(message)
        return ParsedPeriod(None, self.today.year)

    def _from_period(self, period: SourcePeriod) -> ParsedPeriod:
        start = period.start_date
        if period.end_date is not None and period.end_date - start > _QUARTER_SPAN:
            return ParsedPeriod(None, start.year)
        return ParsedPeriod(quarter_for_month(start.month, self.fiscal_year_start_month), start.year)

    def _match_text(self, text: str) -> Optional[ParsedPeriod]:
        for pattern, quarter_group, year_group in _CASCADE:
            match = pattern.search(text)
            if match:
                quarter = int(match.group(quarter_group)) if quarter_group else None
                return ParsedPeriod(quarter, normalize_year(match.group(year_group)))

        match = _MONTH_YEAR.search(text)
        if match:
            month = _MONTHS[match.group(1)[:3].lower()]
            return ParsedPeriod(quarter_for_month(month, self.fiscal_year_start_month), int(match.group(2)))

        year_match = _ANY_YEAR.search(text)
        if year_match:
            quarter_match = _ANY_QUARTER.search(text)
            quarter = None
            if quarter_match:
                quarter = int(quarter_match.group(1) or quarter_match.group(2))
            return ParsedPeriod(quarter, int(year_match.group(1)))
        return None
