#!/usr/bin/env python
"""
Проверка согласованности данных GA4 дашборда.

Запрашивает все представления за один период, выводит отчеты валидации
каждого представления и сравнивает количество LLM-сессий между ними.
"""

import sys
import logging
import argparse
from pathlib import Path

# Добавляем корневую директорию проекта в sys.path
sys.path.append(str(Path(__file__).resolve().parent.parent))

from ga4_analytics.dashboard_service import fetch_all_views

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger('verify_ga4_consistency')


def collect_validation_reports(views):
    """Validation reports of every view, keyed by view (and breakdown for devices)."""
    reports = {}
    for view, data in views.items():
        validation = (data.get('summary') or {}).get('validation')
        if not validation:
            continue
        if view == 'devices':
            for breakdown, report in validation.items():
                reports[f'{view}/{breakdown}'] = report
        else:
            reports[view] = validation
    return reports


def print_report(result):
    """Печатает результаты проверки; возвращает количество найденных проблем"""
    issues_found = 0
    print('=' * 60)
    for name, report in collect_validation_reports(result['views']).items():
        print(f"\n{name.upper()}:")
        print(f"  sessions: {report['final_total']} (expected {report['expected_total']}), "
              f"percentages: {report['percentage_sum']}")
        if report['issues']:
            issues_found += len(report['issues'])
            for issue in report['issues']:
                print(f"  ! {issue} (reconciled)")
        else:
            print('  OK')

    for view, error in result['failed'].items():
        issues_found += 1
        print(f"\n{view.upper()}:\n  ! failed: {error}")

    print('\nLLM sessions by view:')
    for view, total in result['llm_session_totals'].items():
        print(f"  {view}: {total}")
    if result['cross_view_issues']:
        issues_found += 1
        print('  ! LLM session totals differ between views')

    print('\n' + '=' * 60)
    if issues_found:
        print(f"Found {issues_found} issue(s)")
    else:
        print('All checks passed')
    return issues_found


def main():
    parser = argparse.ArgumentParser(description='Verify GA4 dashboard data consistency')
    parser.add_argument('--property-id', help='GA4 property id (default: GA4_PROPERTY_ID)')
    parser.add_argument('--start-date', default='30daysAgo', help='Start date (default: 30daysAgo)')
    parser.add_argument('--end-date', default='today', help='End date (default: today)')
    parser.add_argument('--conversion-event', help='Conversion event (default: conversions)')
    parser.add_argument('--use-cache', action='store_true', help='Verify cached snapshots instead of fresh data')

    args = parser.parse_args()

    logger.info(f"Starting GA4 data consistency verification for {args.start_date}..{args.end_date}")
    result = fetch_all_views(
        property_id=args.property_id,
        start_date=args.start_date,
        end_date=args.end_date,
        conversion_event=args.conversion_event,
        use_cache=args.use_cache,
    )
    issues_found = print_report(result)
    sys.exit(1 if issues_found else 0)


if __name__ == "__main__":
    main()
