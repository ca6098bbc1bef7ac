"""
Geographic and device breakdowns of (LLM) traffic.
"""
import logging
from typing import Callable, Dict, List, Any, Optional, Tuple

from .aggregation import aggregate_rows, finalize_groups, total_sessions
from .platforms import detect_llm_platform, get_platform_favicon
from .report_schema import (
    DEVICE_LAYOUT,
    GEO_LAYOUT,
    PLATFORM_LAYOUT,
    DecodedRow,
    decode_rows,
)
from .validation import reconcile_records

logger = logging.getLogger(__name__)

UNKNOWN = 'Unknown'


def _is_llm_row(row: DecodedRow) -> bool:
    return detect_llm_platform(row.dim('source'), row.dim('referrer')) is not None


def _dimension_key(dimension: str, filter_llms: bool) -> Callable[[DecodedRow], Optional[str]]:
    def key(row: DecodedRow) -> Optional[str]:
        if filter_llms and not _is_llm_row(row):
            return None
        return row.dim(dimension) or UNKNOWN
    return key


def _breakdown(rows: List[DecodedRow], dimension: str, filter_llms: bool,
               view: str, label: str) -> Tuple[List[Dict[str, Any]], float, Dict[str, Any]]:
    groups = aggregate_rows(rows, _dimension_key(dimension, filter_llms))
    expected = total_sessions(groups)
    records, report = reconcile_records(finalize_groups(groups), expected, view=view)
    return [r.to_dict(label=label) for r in records], expected, report.to_dict()


def transform_geo_data(ga4_response: Optional[Dict[str, Any]], filter_llms: bool = True) -> Dict[str, Any]:
    """
    Transform a geo report into per-country records.

    Args:
        ga4_response: GA4 response for GEO_LAYOUT
        filter_llms: Keep only rows whose referrer or source is an LLM platform

    Returns:
        Dict with countries (records, also keyed by 'country'), total_sessions and summary
    """
    rows = decode_rows(ga4_response, GEO_LAYOUT)
    countries, total, validation = _breakdown(rows, 'country', filter_llms, 'geo', 'country')

    logger.info(f"Geo: {len(countries)} countries, {total} sessions "
                f"(rows={len(rows)}, filter_llms={filter_llms})")

    return {
        'countries': countries,
        'total_sessions': total,
        'summary': {
            'total_sessions': total,
            'total_countries': len(countries),
            'top_country': countries[0]['name'] if countries else 'N/A',
            'top_country_share': countries[0]['percentage'] if countries else 0.0,
            'validation': validation,
        },
    }


def transform_device_data(ga4_response: Optional[Dict[str, Any]], filter_llms: bool = True) -> Dict[str, Any]:
    """
    Transform a device report into device, OS and browser breakdowns.

    Each breakdown is aggregated and validated on its own over the same
    (optionally LLM-filtered) rows, so all three share one session total.
    """
    rows = decode_rows(ga4_response, DEVICE_LAYOUT)
    devices, total, device_check = _breakdown(rows, 'device', filter_llms, 'devices', 'device')
    systems, _, os_check = _breakdown(rows, 'os', filter_llms, 'devices-os', 'os')
    browsers, _, browser_check = _breakdown(rows, 'browser', filter_llms, 'devices-browser', 'browser')

    logger.info(f"Devices: {len(devices)} devices, {len(systems)} OS, {len(browsers)} browsers, "
                f"{total} sessions")

    return {
        'device_breakdown': devices,
        'os_breakdown': systems,
        'browser_breakdown': browsers,
        'total_sessions': total,
        'summary': {
            'total_sessions': total,
            'top_device': devices[0]['name'] if devices else 'N/A',
            'top_os': systems[0]['name'] if systems else 'N/A',
            'top_browser': browsers[0]['name'] if browsers else 'N/A',
            'validation': {'device': device_check, 'os': os_check, 'browser': browser_check},
        },
    }


def build_llm_platform_breakdown(ga4_response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Session counts per LLM platform with favicons, for the header strip of the geo view.

    Expects a PLATFORM_LAYOUT response; rows with no sessions are ignored.
    """
    counts: Dict[str, int] = {}
    for row in decode_rows(ga4_response, PLATFORM_LAYOUT):
        platform = detect_llm_platform(row.dim('source'), row.dim('referrer'))
        sessions = row.metric('sessions')
        if not platform or sessions == 0:
            continue
        counts[platform] = counts.get(platform, 0) + int(round(sessions))

    breakdown = [
        {'name': name, 'favicon': get_platform_favicon(name), 'sessions': sessions}
        for name, sessions in counts.items()
    ]
    return sorted(breakdown, key=lambda p: (-p['sessions'], p['name']))
