"""
Dashboard views over GA4: fetch reports, transform them and cache the result.

Every view follows the same steps: normalise the date range, look for an
unexpired snapshot, run the GA4 report (plus the comparison period report for
the platform views), transform it and store the transformed data.
"""
import os
import json
import logging
from datetime import date, timedelta
from typing import Dict, List, Any, Optional

from .date_helpers import calculate_comparison_dates, normalize_date_range, parse_ga4_date
from .db import delete_expired_snapshots, get_cached_snapshot, save_snapshot
from .ga4_client import fetch_property_default_uri, resolve_property_id, run_ga4_report
from .geo_device_transformer import build_llm_platform_breakdown, transform_device_data, transform_geo_data
from .pages_transformer import transform_pages_data
from .platform_transformer import transform_to_llm_platforms, transform_to_platform_split
from .report_schema import (
    DEFAULT_CONVERSION_EVENT,
    DEVICE_LAYOUT,
    GEO_LAYOUT,
    LLM_FILTER_FIELDS,
    PAGES_LAYOUT,
    PLATFORM_LAYOUT,
    TOTALS_LAYOUT,
    TREND_LAYOUT,
    build_report_config,
    with_date_range,
)
from .trend_transformer import transform_metrics_data, transform_trend_data
from .validation import collect_llm_session_totals, verify_cross_view_consistency

logger = logging.getLogger(__name__)

VIEWS = ('platform-split', 'llm-platforms', 'geo', 'devices', 'pages', 'trends')

# Views whose numbers depend on the selected conversion event
CONVERSION_VIEWS = ('platform-split', 'llm-platforms', 'pages')

# Date windows refreshed by the daily task, in days
REFRESH_WINDOWS = (7, 30)


def get_conversion_event(conversion_event: Optional[str] = None) -> str:
    return conversion_event or os.getenv('GA4_CONVERSION_EVENT') or DEFAULT_CONVERSION_EVENT


def snapshot_key(view: str, conversion_event: str) -> str:
    if view in CONVERSION_VIEWS:
        return f'{view}-{conversion_event}'
    return view


def _fetch_with_comparison(config: Dict[str, Any], property_id: str, start_date: str, end_date: str):
    response = run_ga4_report(config, property_id)
    comparison = calculate_comparison_dates(start_date, end_date)
    comparison_config = with_date_range(
        config, comparison['comparison_start_date'], comparison['comparison_end_date']
    )
    logger.info(f"Comparison period: {comparison['comparison_start_date']}..{comparison['comparison_end_date']}")
    return response, run_ga4_report(comparison_config, property_id)


def _build_view(view: str, property_id: str, start_date: str, end_date: str, conversion_event: str) -> Dict[str, Any]:
    if view in ('platform-split', 'llm-platforms'):
        config = build_report_config(PLATFORM_LAYOUT, start_date, end_date, conversion_event)
        response, comparison_response = _fetch_with_comparison(config, property_id, start_date, end_date)
        if view == 'platform-split':
            return transform_to_platform_split(response, comparison_response)
        return transform_to_llm_platforms(response, comparison_response)

    if view == 'geo':
        config = build_report_config(GEO_LAYOUT, start_date, end_date, conversion_event)
        data = transform_geo_data(run_ga4_report(config, property_id))
        try:
            platform_config = build_report_config(PLATFORM_LAYOUT, start_date, end_date, conversion_event)
            data['platform_breakdown'] = build_llm_platform_breakdown(run_ga4_report(platform_config, property_id))
        except Exception as e:
            logger.warning(f"[geo] Could not fetch platform breakdown: {e}")
            data['platform_breakdown'] = []
        return data

    if view == 'devices':
        config = build_report_config(DEVICE_LAYOUT, start_date, end_date, conversion_event)
        return transform_device_data(run_ga4_report(config, property_id))

    if view == 'pages':
        config = build_report_config(PAGES_LAYOUT, start_date, end_date, conversion_event,
                                     llm_filter_fields=LLM_FILTER_FIELDS)
        response = run_ga4_report(config, property_id)
        return transform_pages_data(response, default_uri=fetch_property_default_uri(property_id))

    if view == 'trends':
        config = build_report_config(TREND_LAYOUT, start_date, end_date, conversion_event)
        totals_config = build_report_config(TOTALS_LAYOUT, start_date, end_date, conversion_event)
        return {
            'trend': transform_trend_data(run_ga4_report(config, property_id)),
            'metrics': transform_metrics_data(run_ga4_report(totals_config, property_id)),
        }

    raise ValueError(f"Unknown dashboard view: {view}. Expected one of {', '.join(VIEWS)}")


def fetch_dashboard_view(view: str,
                         property_id: Optional[str] = None,
                         start_date: Optional[str] = None,
                         end_date: Optional[str] = None,
                         date_range: Optional[str] = None,
                         conversion_event: Optional[str] = None,
                         use_cache: bool = True) -> Dict[str, Any]:
    """
    Get the transformed data of one dashboard view.

    Args:
        view: One of VIEWS
        property_id: GA4 property; GA4_PROPERTY_ID by default
        start_date: Start date (GA4 expression or YYYY-MM-DD)
        end_date: End date (GA4 expression or YYYY-MM-DD)
        date_range: Range like "30 days"; overrides start_date/end_date
        conversion_event: Conversion event; GA4_CONVERSION_EVENT or 'conversions' by default
        use_cache: Return an unexpired snapshot when there is one

    Returns:
        Transformed view data
    """
    if view not in VIEWS:
        raise ValueError(f"Unknown dashboard view: {view}. Expected one of {', '.join(VIEWS)}")

    property_id = resolve_property_id(property_id)
    conversion_event = get_conversion_event(conversion_event)
    dates = normalize_date_range(start_date, end_date, date_range)
    start, end = dates['start_date'], dates['end_date']
    key = snapshot_key(view, conversion_event)

    if use_cache:
        try:
            cached = get_cached_snapshot(property_id, key, start, end)
        except Exception as e:
            logger.warning(f"[{view}] Snapshot cache unavailable, fetching fresh data: {e}")
            cached = None
        if cached is not None:
            logger.info(f"[{view}] Returning cached snapshot for {start}..{end}")
            return cached

    logger.info(f"[{view}] Fetching fresh data for property {property_id}, {start}..{end}")
    data = _build_view(view, property_id, start, end, conversion_event)

    try:
        save_snapshot(property_id, key, start, end, data)
    except Exception as e:
        logger.warning(f"[{view}] Could not save snapshot: {e}")

    return data


def fetch_all_views(property_id: Optional[str] = None,
                    start_date: Optional[str] = None,
                    end_date: Optional[str] = None,
                    date_range: Optional[str] = None,
                    conversion_event: Optional[str] = None,
                    use_cache: bool = True) -> Dict[str, Any]:
    """
    Fetch every view for one date range and compare LLM session totals across them.

    Returns:
        Dict with views (data by view name), failed (error by view name),
        llm_session_totals and cross_view_issues
    """
    views: Dict[str, Any] = {}
    failed: Dict[str, str] = {}
    for view in VIEWS:
        try:
            views[view] = fetch_dashboard_view(
                view, property_id, start_date, end_date, date_range, conversion_event, use_cache
            )
        except Exception as e:
            logger.error(f"[{view}] Failed to fetch view: {e}")
            failed[view] = str(e)

    totals = collect_llm_session_totals(views)
    return {
        'views': views,
        'failed': failed,
        'llm_session_totals': totals,
        'cross_view_issues': verify_cross_view_consistency(totals),
    }


def refresh_dashboard_snapshots_task(execution_date=None, property_id=None, windows=REFRESH_WINDOWS, **kwargs):
    """
    Задача Airflow для обновления снапшотов всех представлений дашборда.

    Args:
        execution_date: Дата запуска в формате 'YYYY-MM-DD' (по умолчанию сегодня)
        property_id: GA4 property (по умолчанию GA4_PROPERTY_ID)
        windows: Длины обновляемых периодов в днях

    Returns:
        Сводка по каждому периоду: обновленные представления, ошибки, расхождения
    """
    end = parse_ga4_date(execution_date) if execution_date else date.today()
    if end is None:
        raise ValueError(f"Invalid execution_date: {execution_date}")

    logger.info(f"Refreshing dashboard snapshots up to {end.isoformat()} for windows {list(windows)}")

    summary: Dict[str, Any] = {}
    failed_views: List[str] = []
    for days in windows:
        start = end - timedelta(days=days - 1)
        result = fetch_all_views(
            property_id=property_id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            use_cache=False,
        )
        summary[f'{days}d'] = {
            'refreshed': sorted(result['views']),
            'failed': result['failed'],
            'llm_session_totals': result['llm_session_totals'],
            'cross_view_issues': result['cross_view_issues'],
        }
        failed_views.extend(f'{days}d/{view}' for view in result['failed'])

    try:
        delete_expired_snapshots()
    except Exception as e:
        logger.warning(f"Could not purge expired snapshots: {e}")

    if failed_views:
        raise RuntimeError(f"Dashboard refresh failed for: {', '.join(failed_views)}")

    logger.info(f"Dashboard snapshots refreshed: {json.dumps(summary, default=str)}")
    return summary


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    import argparse

    parser = argparse.ArgumentParser(description="Fetch a GA4 dashboard view")
    parser.add_argument("view", choices=VIEWS, help="Dashboard view")
    parser.add_argument("--property-id", help="GA4 property id (default: GA4_PROPERTY_ID)")
    parser.add_argument("--start-date", help="Start date (YYYY-MM-DD or NdaysAgo)")
    parser.add_argument("--end-date", help="End date (YYYY-MM-DD or today)")
    parser.add_argument("--date-range", help="Date range like '30 days'")
    parser.add_argument("--conversion-event", help="Conversion event (default: conversions)")
    parser.add_argument("--no-cache", action="store_true", help="Ignore cached snapshots")
    args = parser.parse_args()

    result = fetch_dashboard_view(
        args.view,
        property_id=args.property_id,
        start_date=args.start_date,
        end_date=args.end_date,
        date_range=args.date_range,
        conversion_event=args.conversion_event,
        use_cache=not args.no_cache,
    )
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
