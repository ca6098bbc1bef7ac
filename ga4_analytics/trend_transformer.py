"""
Daily sessions per platform for the trend chart, and headline totals.
"""
import logging
from typing import Dict, List, Any, Optional

import pandas as pd

from .date_helpers import format_ga4_date
from .platforms import LLM_ROLLUP_NAME, detect_platform, is_llm_platform
from .report_schema import TOTALS_LAYOUT, TREND_LAYOUT, decode_rows

logger = logging.getLogger(__name__)

# Every data point carries all of these series, zero when absent
TREND_SERIES = ('organic', 'direct', 'referral', LLM_ROLLUP_NAME, 'other', 'social', 'email', 'paid')


def _trend_platform(source: str, medium: str) -> str:
    platform = detect_platform(source, medium)
    return LLM_ROLLUP_NAME if is_llm_platform(platform) else platform


def transform_trend_data(ga4_response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Pivot a trend report into one data point per day.

    Args:
        ga4_response: GA4 response for TREND_LAYOUT (date, source, medium / sessions)

    Returns:
        List of {'date': 'YYYY-MM-DD', <series>: sessions, ...} sorted by date
    """
    records = []
    for row in decode_rows(ga4_response, TREND_LAYOUT):
        date = format_ga4_date(row.dim('date'))
        if not date:
            continue
        records.append({
            'date': date,
            'platform': _trend_platform(row.dim('source'), row.dim('medium')),
            'sessions': row.metric('sessions'),
        })

    if not records:
        return []

    df = pd.DataFrame(records)
    pivot = df.pivot_table(index='date', columns='platform', values='sessions', aggfunc='sum', fill_value=0)
    pivot = pivot.reindex(columns=list(TREND_SERIES), fill_value=0).sort_index()

    result = []
    for date, values in pivot.iterrows():
        point: Dict[str, Any] = {'date': date}
        for series in TREND_SERIES:
            point[series] = int(round(float(values[series])))
        result.append(point)

    logger.info(f"Trend: {len(result)} days from {len(records)} rows")
    return result


def transform_metrics_data(ga4_response: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Headline totals from a TOTALS_LAYOUT report; zeros when the report is empty."""
    rows = decode_rows(ga4_response, TOTALS_LAYOUT)
    metrics = rows[0].metrics if rows else {}
    return {
        'total_sessions': metrics.get('sessions', 0.0),
        'total_users': metrics.get('total_users', 0.0),
        'total_page_views': metrics.get('page_views', 0.0),
        'avg_session_duration': metrics.get('avg_session_duration', 0.0),
    }
