"""
Тесты для db.py (снапшоты дашборда)
"""

import unittest
import sys
import os
from unittest.mock import patch, MagicMock

# Добавляем корневую директорию проекта в PYTHONPATH
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from psycopg2.extras import Json

from ga4_analytics.db import (
    DEFAULT_SNAPSHOT_TTL_MINUTES,
    delete_expired_snapshots,
    get_cached_snapshot,
    get_connection,
    get_historical_snapshot,
    get_snapshot_ttl_minutes,
    save_snapshot,
)


class TestSnapshots(unittest.TestCase):
    """Тесты кэша снапшотов."""

    def setUp(self):
        self.mock_conn = MagicMock()
        self.mock_cursor = MagicMock()
        self.mock_conn.cursor.return_value = self.mock_cursor

    @patch('ga4_analytics.db.get_connection')
    def test_get_cached_snapshot_hit(self, mock_get_connection):
        mock_get_connection.return_value = self.mock_conn
        self.mock_cursor.fetchone.return_value = ({'total_sessions': 100},)

        data = get_cached_snapshot('123', 'geo', '7daysAgo', 'today')

        self.assertEqual(data, {'total_sessions': 100})
        params = self.mock_cursor.execute.call_args[0][1]
        self.assertEqual(params, ('123', 'geo', '7daysAgo', 'today'))
        self.assertIn('expires_at > NOW()', self.mock_cursor.execute.call_args[0][0])
        self.mock_conn.close.assert_called_once()

    @patch('ga4_analytics.db.get_connection')
    def test_get_cached_snapshot_miss(self, mock_get_connection):
        mock_get_connection.return_value = self.mock_conn
        self.mock_cursor.fetchone.return_value = None
        self.assertIsNone(get_cached_snapshot('123', 'geo', '7daysAgo', 'today'))

    @patch('ga4_analytics.db.get_connection')
    def test_save_snapshot_upserts_json(self, mock_get_connection):
        mock_get_connection.return_value = self.mock_conn

        save_snapshot('123', 'pages', '30daysAgo', 'today', {'pages': []}, ttl_minutes=15)

        sql, params = self.mock_cursor.execute.call_args[0]
        self.assertIn('ON CONFLICT (property_id, data_type, start_date, end_date)', sql)
        self.assertEqual(params[:4], ('123', 'pages', '30daysAgo', 'today'))
        self.assertIsInstance(params[4], Json)
        self.assertEqual(params[5], 15)
        self.mock_conn.commit.assert_called_once()
        self.mock_conn.close.assert_called_once()

    @patch('ga4_analytics.db.get_connection')
    def test_save_snapshot_error_is_raised(self, mock_get_connection):
        """Ошибка БД логируется, транзакция откатывается, исключение пробрасывается."""
        mock_get_connection.return_value = self.mock_conn
        self.mock_cursor.execute.side_effect = Exception('connection lost')

        with self.assertLogs('ga4_analytics.db', level='ERROR'):
            with self.assertRaises(Exception):
                save_snapshot('123', 'geo', '7daysAgo', 'today', {}, ttl_minutes=5)
        self.mock_conn.rollback.assert_called_once()
        self.mock_conn.close.assert_called_once()

    @patch('ga4_analytics.db.get_connection')
    def test_get_historical_snapshot(self, mock_get_connection):
        mock_get_connection.return_value = self.mock_conn
        self.mock_cursor.fetchone.return_value = ({'countries': []},)

        data = get_historical_snapshot('123', 'geo', '2024-01-05')

        self.assertEqual(data, {'countries': []})
        sql, params = self.mock_cursor.execute.call_args[0]
        self.assertIn('start_date <= %s AND end_date >= %s', sql)
        self.assertEqual(params, ('123', 'geo', '2024-01-05', '2024-01-05'))

    @patch('ga4_analytics.db.get_connection')
    def test_delete_expired_snapshots(self, mock_get_connection):
        mock_get_connection.return_value = self.mock_conn
        self.mock_cursor.rowcount = 3
        self.assertEqual(delete_expired_snapshots(keep_days=7), 3)
        self.mock_conn.commit.assert_called_once()


class TestConfig(unittest.TestCase):
    """Тесты конфигурации из окружения."""

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_database_url(self):
        with self.assertRaises(EnvironmentError):
            get_connection()

    @patch.dict(os.environ, {'GA4_SNAPSHOT_TTL_MINUTES': '30'})
    def test_ttl_from_env(self):
        self.assertEqual(get_snapshot_ttl_minutes(), 30)

    @patch.dict(os.environ, {'GA4_SNAPSHOT_TTL_MINUTES': 'soon'})
    def test_invalid_ttl(self):
        self.assertEqual(get_snapshot_ttl_minutes(), DEFAULT_SNAPSHOT_TTL_MINUTES)

    @patch.dict(os.environ, {}, clear=True)
    def test_default_ttl(self):
        self.assertEqual(get_snapshot_ttl_minutes(), DEFAULT_SNAPSHOT_TTL_MINUTES)


if __name__ == '__main__':
    unittest.main()
