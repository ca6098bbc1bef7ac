"""
Date range helpers for GA4 reports: relative date parsing, normalisation
and period-over-period comparison windows.
"""
import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_COMPARISON = {
    'comparison_start_date': '7daysAgo',
    'comparison_end_date': 'today',
}

DAYS_AGO_RE = re.compile(r'^(\d+)daysAgo$')
COMPACT_DATE_RE = re.compile(r'^\d{8}$')
ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def _resolve_relative(value: str, today: date) -> str:
    if value == 'today':
        return today.isoformat()
    if value == 'yesterday':
        return (today - timedelta(days=1)).isoformat()
    return value


def parse_ga4_date(value: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Parse a GA4 date expression into a date.

    Supports 'NdaysAgo', 'today', 'yesterday', 'YYYYMMDD' and 'YYYY-MM-DD';
    anything else is handed to dateutil. Returns None when the value cannot
    be parsed.
    """
    today = today or date.today()
    if not value:
        return None
    value = _resolve_relative(value.strip(), today)

    try:
        match = DAYS_AGO_RE.match(value)
        if match:
            return today - timedelta(days=int(match.group(1)))
        if 'daysAgo' in value:
            return None
        if COMPACT_DATE_RE.match(value):
            return datetime.strptime(value, '%Y%m%d').date()
        if ISO_DATE_RE.match(value):
            return datetime.strptime(value, '%Y-%m-%d').date()
        return date_parser.parse(value).date()
    except (ValueError, OverflowError):
        return None


def calculate_comparison_dates(start_date: str, end_date: str, today: Optional[date] = None) -> Dict[str, str]:
    """
    Calculate the comparison window immediately preceding the current one.

    The comparison window has the same length as the current one and ends the
    day before the current window starts.

    Args:
        start_date: Start of the current window (GA4 date expression)
        end_date: End of the current window (GA4 date expression)
        today: Reference date for relative expressions (defaults to date.today())

    Returns:
        Dict with comparison_start_date and comparison_end_date as YYYY-MM-DD.
        Falls back to 7daysAgo..today when either input cannot be parsed.
    """
    today = today or date.today()
    start = parse_ga4_date(start_date, today)
    end = parse_ga4_date(end_date, today)

    if start is None or end is None:
        logger.warning(f"Invalid dates in calculate_comparison_dates: start={start_date!r}, end={end_date!r}; "
                       f"using default comparison window")
        return dict(DEFAULT_COMPARISON)

    period_days = math.ceil((end - start).total_seconds() / 86400)

    try:
        comparison_end = start - timedelta(days=1)
        comparison_start = comparison_end - timedelta(days=period_days)
    except OverflowError:
        logger.warning(f"Comparison window out of range for start={start_date!r}, end={end_date!r}; "
                       f"using default comparison window")
        return dict(DEFAULT_COMPARISON)

    return {
        'comparison_start_date': comparison_start.strftime('%Y-%m-%d'),
        'comparison_end_date': comparison_end.strftime('%Y-%m-%d'),
    }


def normalize_date_range(start_date: Optional[str] = None,
                         end_date: Optional[str] = None,
                         date_range: Optional[str] = None,
                         today: Optional[date] = None) -> Dict[str, str]:
    """
    Normalise a requested date range to GA4 relative format.

    A date_range string such as "30 days" wins over explicit dates. ISO dates
    are converted to 'NdaysAgo'; an end date of today or later becomes 'today'.
    'yesterday' is normalised to 'today' so every view covers the same window.
    """
    today = today or date.today()
    final_start = start_date or '7daysAgo'
    final_end = end_date or 'today'

    if date_range and isinstance(date_range, str):
        head = date_range.strip().split(' ')[0]
        if head.isdigit() and int(head) > 0:
            return {'start_date': f'{int(head)}daysAgo', 'end_date': 'today'}
        return {'start_date': final_start, 'end_date': final_end}

    if start_date and ISO_DATE_RE.match(start_date):
        parsed = parse_ga4_date(start_date, today)
        if parsed is not None:
            days_ago = (today - parsed).days
            if days_ago > 0:
                final_start = f'{days_ago}daysAgo'

    if end_date and ISO_DATE_RE.match(end_date):
        parsed = parse_ga4_date(end_date, today)
        if parsed is not None:
            if parsed >= today:
                final_end = 'today'
            else:
                days_ago = (today - parsed).days
                final_end = 'yesterday' if days_ago == 1 else f'{days_ago}daysAgo'

    if final_end == 'yesterday':
        final_end = 'today'

    return {'start_date': final_start, 'end_date': final_end}


def format_ga4_date(value: Optional[str]) -> str:
    """Format a GA4 'YYYYMMDD' date dimension as 'YYYY-MM-DD'."""
    if not value:
        return ''
    if COMPACT_DATE_RE.match(value):
        return f'{value[0:4]}-{value[4:6]}-{value[6:8]}'
    parsed = parse_ga4_date(value)
    return parsed.isoformat() if parsed else value
