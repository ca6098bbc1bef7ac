"""
Тесты для dashboard_service.py
"""

import unittest
import sys
import os
from unittest.mock import patch

# Добавляем корневую директорию проекта в PYTHONPATH
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ga4_analytics.dashboard_service import (
    fetch_all_views,
    fetch_dashboard_view,
    refresh_dashboard_snapshots_task,
    snapshot_key,
)
from ga4_responses import device_row, ga4_response, ga4_row, geo_row, page_row, platform_row


def fake_report(config, property_id=None):
    """Ответ GA4 по первому измерению запроса: 20 сессий из ChatGPT и 80 органических."""
    dimensions = [d['name'] for d in config['dimensions']]
    first = dimensions[0] if dimensions else None
    if first == 'sessionSource':
        return ga4_response([
            platform_row('chatgpt.com', 'referral', sessions=20, engagement_rate=0.6),
            platform_row('google', 'organic', sessions=80, engagement_rate=0.4),
        ])
    if first == 'country':
        return ga4_response([geo_row('Kazakhstan', 'chatgpt.com', sessions=20),
                             geo_row('Kazakhstan', 'google', 'organic', sessions=80)])
    if first == 'deviceCategory':
        return ga4_response([device_row('mobile', 'iOS', 'Safari', 'chatgpt.com', sessions=20)])
    if first == 'pagePath':
        return ga4_response([page_row('/blog/a', 'A', 'chatgpt.com', sessions=20)])
    if first == 'date':
        return ga4_response([ga4_row(['20240101', 'chatgpt.com', 'referral'], [20])])
    return ga4_response([ga4_row([], [100, 90, 300, 60])])


class TestFetchDashboardView(unittest.TestCase):
    """Тесты получения представлений дашборда."""

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report')
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot')
    def test_cached_snapshot_is_returned(self, mock_cached, mock_report, mock_save):
        mock_cached.return_value = {'cached': True}

        result = fetch_dashboard_view('platform-split', property_id='123')

        self.assertEqual(result, {'cached': True})
        mock_cached.assert_called_once_with('123', 'platform-split-conversions', '7daysAgo', 'today')
        mock_report.assert_not_called()
        mock_save.assert_not_called()

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot', return_value=None)
    def test_platform_split_with_comparison(self, mock_cached, mock_report, mock_save):
        result = fetch_dashboard_view('platform-split', property_id='123', date_range='30 days')

        self.assertEqual(mock_report.call_count, 2)
        current_config = mock_report.call_args_list[0][0][0]
        comparison_config = mock_report.call_args_list[1][0][0]
        self.assertEqual(current_config['dateRanges'], [{'startDate': '30daysAgo', 'endDate': 'today'}])
        self.assertNotEqual(comparison_config['dateRanges'], current_config['dateRanges'])

        performance = {p['name']: p for p in result['performance_data']}
        self.assertEqual(performance['LLMs']['percentage'], 20.0)
        self.assertEqual(performance['LLMs']['share_change'], 0.0)
        mock_save.assert_called_once_with('123', 'platform-split-conversions', '30daysAgo', 'today', result)

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot')
    def test_cache_errors_do_not_break_the_view(self, mock_cached, mock_report, mock_save):
        """Недоступный кэш не мешает получить свежие данные."""
        mock_cached.side_effect = Exception('db down')
        mock_save.side_effect = Exception('db down')

        with self.assertLogs('ga4_analytics.dashboard_service', level='WARNING'):
            result = fetch_dashboard_view('devices', property_id='123')

        self.assertEqual(result['total_sessions'], 20)

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    def test_use_cache_false_skips_lookup(self, mock_report, mock_save):
        with patch('ga4_analytics.dashboard_service.get_cached_snapshot') as mock_cached:
            fetch_dashboard_view('geo', property_id='123', use_cache=False)
        mock_cached.assert_not_called()
        mock_save.assert_called_once()

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report')
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot', return_value=None)
    def test_geo_platform_breakdown_is_optional(self, mock_cached, mock_report, mock_save):
        mock_report.side_effect = [fake_report({'dimensions': [{'name': 'country'}]}), Exception('quota')]

        with self.assertLogs('ga4_analytics.dashboard_service', level='WARNING'):
            result = fetch_dashboard_view('geo', property_id='123')

        self.assertEqual(result['platform_breakdown'], [])
        self.assertEqual(result['total_sessions'], 20)

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.fetch_property_default_uri', return_value='https://example.com')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot', return_value=None)
    def test_pages_use_site_url(self, mock_cached, mock_report, mock_uri, mock_save):
        result = fetch_dashboard_view('pages', property_id='123')
        self.assertEqual(result['pages'][0]['url'], 'https://example.com/blog/a')
        mock_uri.assert_called_once_with('123')
        config = mock_report.call_args[0][0]
        fields = [e['filter']['fieldName'] for e in config['dimensionFilter']['orGroup']['expressions']]
        self.assertEqual(fields, ['sessionSource', 'pageReferrer'])

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot', return_value=None)
    def test_trends(self, mock_cached, mock_report, mock_save):
        result = fetch_dashboard_view('trends', property_id='123')
        self.assertEqual(result['trend'], [{
            'date': '2024-01-01', 'organic': 0, 'direct': 0, 'referral': 0, 'LLMs': 20,
            'other': 0, 'social': 0, 'email': 0, 'paid': 0,
        }])
        self.assertEqual(result['metrics']['total_sessions'], 100.0)

    @patch.dict(os.environ, {'GA4_CONVERSION_EVENT': 'purchases'})
    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    @patch('ga4_analytics.dashboard_service.get_cached_snapshot', return_value=None)
    def test_conversion_event_from_env(self, mock_cached, mock_report, mock_save):
        fetch_dashboard_view('llm-platforms', property_id='123')
        config = mock_report.call_args_list[0][0][0]
        self.assertEqual(config['metrics'][2], {'name': 'keyEvents:purchase'})
        self.assertEqual(mock_save.call_args[0][1], 'llm-platforms-purchases')

    def test_unknown_view(self):
        with self.assertRaises(ValueError):
            fetch_dashboard_view('funnels', property_id='123')

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_property_id(self):
        with self.assertRaises(EnvironmentError):
            fetch_dashboard_view('geo')


class TestAllViews(unittest.TestCase):
    """Тесты получения всех представлений и сверки между ними."""

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.fetch_property_default_uri', return_value=None)
    @patch('ga4_analytics.dashboard_service.run_ga4_report', side_effect=fake_report)
    def test_consistent_views(self, mock_report, mock_uri, mock_save):
        result = fetch_all_views(property_id='123', use_cache=False)

        self.assertEqual(result['failed'], {})
        self.assertEqual(result['llm_session_totals'], {
            'platform-split': 20, 'llm-platforms': 20, 'pages': 20, 'geo': 20, 'devices': 20,
        })
        self.assertEqual(result['cross_view_issues'], [])

    @patch('ga4_analytics.dashboard_service.save_snapshot')
    @patch('ga4_analytics.dashboard_service.fetch_property_default_uri', return_value=None)
    @patch('ga4_analytics.dashboard_service.run_ga4_report')
    def test_failed_view_is_reported(self, mock_report, mock_uri, mock_save):
        def report(config, property_id=None):
            if config['dimensions'] and config['dimensions'][0]['name'] == 'deviceCategory':
                raise Exception('quota exceeded')
            return fake_report(config, property_id)
        mock_report.side_effect = report

        with self.assertLogs('ga4_analytics.dashboard_service', level='ERROR'):
            result = fetch_all_views(property_id='123', use_cache=False)

        self.assertIn('devices', result['failed'])
        self.assertNotIn('devices', result['views'])


class TestRefreshTask(unittest.TestCase):
    """Тесты задачи Airflow."""

    @patch('ga4_analytics.dashboard_service.delete_expired_snapshots')
    @patch('ga4_analytics.dashboard_service.fetch_all_views')
    def test_refresh_windows(self, mock_fetch_all, mock_delete):
        mock_fetch_all.return_value = {
            'views': {'geo': {}}, 'failed': {}, 'llm_session_totals': {}, 'cross_view_issues': [],
        }

        summary = refresh_dashboard_snapshots_task(execution_date='2024-01-31', property_id='123')

        self.assertEqual(set(summary), {'7d', '30d'})
        first_call = mock_fetch_all.call_args_list[0][1]
        self.assertEqual(first_call['start_date'], '2024-01-25')
        self.assertEqual(first_call['end_date'], '2024-01-31')
        self.assertFalse(first_call['use_cache'])
        self.assertEqual(mock_fetch_all.call_args_list[1][1]['start_date'], '2024-01-02')
        mock_delete.assert_called_once()

    @patch('ga4_analytics.dashboard_service.delete_expired_snapshots')
    @patch('ga4_analytics.dashboard_service.fetch_all_views')
    def test_failures_raise(self, mock_fetch_all, mock_delete):
        mock_fetch_all.return_value = {
            'views': {}, 'failed': {'geo': 'quota'}, 'llm_session_totals': {}, 'cross_view_issues': [],
        }
        with self.assertRaises(RuntimeError):
            refresh_dashboard_snapshots_task(execution_date='2024-01-31', property_id='123')

    def test_invalid_execution_date(self):
        with self.assertRaises(ValueError):
            refresh_dashboard_snapshots_task(execution_date='not a date', property_id='123')


def test_snapshot_key():
    assert snapshot_key('pages', 'conversions') == 'pages-conversions'
    assert snapshot_key('geo', 'purchases') == 'geo'
