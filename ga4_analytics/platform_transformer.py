"""
Transformers for the platform views of the dashboard: traffic split by
platform (with LLMs rolled up) and the per-LLM platform breakdown.
"""
import logging
from typing import Dict, Any, Optional

from .aggregation import (
    GroupAccumulator,
    aggregate_rows,
    finalize_groups,
    round_half_up,
    safe_divide,
    to_display_percent,
    total_sessions,
)
from .llm_rollup import rollup_llm_platforms
from .platforms import (
    detect_platform,
    format_platform_name,
    get_platform_color,
    is_llm_platform,
)
from .report_schema import PLATFORM_LAYOUT, DecodedRow, decode_rows
from .validation import reconcile_records

logger = logging.getLogger(__name__)


def _platform_key(row: DecodedRow) -> str:
    return detect_platform(row.dim('source'), row.dim('medium'), row.dim('referrer'))


def _llm_platform_key(row: DecodedRow) -> Optional[str]:
    platform = _platform_key(row)
    return platform if is_llm_platform(platform) else None


def _aggregate_platforms(response: Optional[Dict[str, Any]]) -> Dict[str, GroupAccumulator]:
    return aggregate_rows(decode_rows(response, PLATFORM_LAYOUT), _platform_key)


def transform_to_platform_split(ga4_response: Optional[Dict[str, Any]],
                                comparison_response: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Transform a platform report into the platform split view.

    Rows are grouped by detected platform, the LLM platforms are rolled up into
    a single "LLMs" group and every group is compared with the same group of
    the comparison period.

    Args:
        ga4_response: GA4 response for PLATFORM_LAYOUT
        comparison_response: GA4 response for the comparison period (optional)

    Returns:
        Dict with platform_split (pie chart), rankings (table), total_sessions,
        summary and performance_data (full records)
    """
    current = rollup_llm_platforms(_aggregate_platforms(ga4_response))
    comparison = rollup_llm_platforms(_aggregate_platforms(comparison_response))

    grand_total = total_sessions(current.groups)
    comparison_total = total_sessions(comparison.groups)

    records = finalize_groups(current.groups, comparison.groups, name_fn=format_platform_name)
    records, report = reconcile_records(records, grand_total, view='platform-split')

    platform_split = [
        {'name': r.name, 'value': r.percentage, 'color': get_platform_color(r.name)}
        for r in records
    ]
    rankings = [
        {
            'rank': idx + 1,
            'name': r.name,
            'sessions': r.sessions,
            'percentage': f'{r.percentage:.1f}%',
            'change': r.share_change,
            'absolute_change': r.absolute_change,
            'trend': r.trend,
        }
        for idx, r in enumerate(records)
    ]

    top = records[0] if records else None
    total_change = (round_half_up(safe_divide(grand_total - comparison_total, comparison_total) * 100, 2)
                    if comparison_total > 0 else 0.0)

    logger.info(f"Platform split: {len(records)} platforms, {grand_total} sessions, "
                f"LLM sessions {current.llm_sessions} from {current.llm_breakdown}")

    return {
        'platform_split': platform_split,
        'rankings': rankings,
        'total_sessions': grand_total,
        'summary': {
            'total_sessions': grand_total,
            'top_platform': top.name if top else 'N/A',
            'top_platform_share': top.percentage if top else 0.0,
            'total_change': total_change,
            'comparison_total_sessions': comparison_total,
            'llm_breakdown': current.llm_breakdown,
            'validation': report.to_dict(),
        },
        'performance_data': [r.to_dict() for r in records],
    }


def transform_to_llm_platforms(ga4_response: Optional[Dict[str, Any]],
                               comparison_response: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Transform a platform report into the per-LLM platform view.

    Only rows detected as an LLM platform are kept; percentages are shares of
    the LLM total. The summary engagement rate is session weighted.
    """
    rows = decode_rows(ga4_response, PLATFORM_LAYOUT)
    groups = aggregate_rows(rows, _llm_platform_key)
    comparison = aggregate_rows(decode_rows(comparison_response, PLATFORM_LAYOUT), _llm_platform_key)

    llm_total = total_sessions(groups)
    records = finalize_groups(groups, comparison)
    records, report = reconcile_records(records, llm_total, view='llm-platforms')

    merged = GroupAccumulator()
    for acc in groups.values():
        merged = merged.merge(acc)

    logger.info(f"LLM platforms: {len(records)} platforms, {llm_total} sessions "
                f"out of {len(rows)} rows")

    performance = [r.to_dict() for r in records]
    return {
        'platforms': performance,
        'performance_data': performance,
        'summary': {
            'total_llm_sessions': llm_total,
            'total_llm_conversions': merged.conversions,
            'avg_engagement_rate': to_display_percent(merged.engagement_rate),
            'validation': report.to_dict(),
        },
    }
