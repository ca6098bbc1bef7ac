"""
Database persistence of transformed GA4 dashboard data using psycopg2.

Each transformed view is stored as a JSONB snapshot keyed by property, view
and date range. Snapshots expire after a TTL; expired snapshots stay
available for historical lookups until purged.
"""
import os
import logging
from typing import Dict, Any, Optional

import psycopg2
from psycopg2.extras import Json

logger = logging.getLogger(__name__)

SNAPSHOT_TABLE = 'ga4_data_snapshots'
DEFAULT_SNAPSHOT_TTL_MINUTES = 5


def get_connection():
    """
    Return a new database connection using DATABASE_URL from environment.
    """
    url = os.getenv('DATABASE_URL')
    if not url:
        raise EnvironmentError('DATABASE_URL is not set')
    return psycopg2.connect(url)


def get_snapshot_ttl_minutes() -> int:
    value = os.getenv('GA4_SNAPSHOT_TTL_MINUTES')
    if not value:
        return DEFAULT_SNAPSHOT_TTL_MINUTES
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid GA4_SNAPSHOT_TTL_MINUTES={value!r}, using {DEFAULT_SNAPSHOT_TTL_MINUTES}")
        return DEFAULT_SNAPSHOT_TTL_MINUTES


def ensure_snapshot_table(cur):
    """
    Создает таблицу снапшотов, если её еще нет.
    """
    cur.execute(f"""
        CREATE TABLE IF NOT EXISTS {SNAPSHOT_TABLE} (
            id SERIAL PRIMARY KEY,
            property_id TEXT NOT NULL,
            data_type TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            data JSONB NOT NULL,
            fetched_at TIMESTAMPTZ DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL,
            UNIQUE (property_id, data_type, start_date, end_date)
        );
        CREATE INDEX IF NOT EXISTS idx_{SNAPSHOT_TABLE}_expires_at ON {SNAPSHOT_TABLE}(expires_at);
    """)


def get_cached_snapshot(property_id: str, data_type: str, start_date: str, end_date: str) -> Optional[Dict[str, Any]]:
    """
    Return the unexpired snapshot data for a view and date range, or None.
    """
    conn = get_connection()
    try:
        cur = conn.cursor()
        ensure_snapshot_table(cur)
        cur.execute(f"""
            SELECT data FROM {SNAPSHOT_TABLE}
            WHERE property_id = %s AND data_type = %s
              AND start_date = %s AND end_date = %s
              AND expires_at > NOW()
            ORDER BY fetched_at DESC
            LIMIT 1
        """, (str(property_id), data_type, start_date, end_date))
        row = cur.fetchone()
        conn.commit()
        cur.close()
        return row[0] if row else None
    except Exception as e:
        conn.rollback()
        logger.error(f"Error reading {data_type} snapshot for property {property_id}: {e}")
        raise
    finally:
        conn.close()


def save_snapshot(property_id: str,
                  data_type: str,
                  start_date: str,
                  end_date: str,
                  data: Dict[str, Any],
                  ttl_minutes: Optional[int] = None) -> None:
    """
    Insert or replace the snapshot of a view for a date range.

    Args:
        property_id: GA4 property
        data_type: View name ('platform-split', 'geo', ...)
        start_date: Start of the date range as requested
        end_date: End of the date range as requested
        data: Transformed view data
        ttl_minutes: Lifetime of the snapshot; GA4_SNAPSHOT_TTL_MINUTES by default
    """
    if ttl_minutes is None:
        ttl_minutes = get_snapshot_ttl_minutes()

    conn = get_connection()
    try:
        cur = conn.cursor()
        ensure_snapshot_table(cur)
        cur.execute(f"""
            INSERT INTO {SNAPSHOT_TABLE} (property_id, data_type, start_date, end_date, data, fetched_at, expires_at)
            VALUES (%s, %s, %s, %s, %s, NOW(), NOW() + %s * INTERVAL '1 minute')
            ON CONFLICT (property_id, data_type, start_date, end_date) DO UPDATE SET
                data = EXCLUDED.data,
                fetched_at = EXCLUDED.fetched_at,
                expires_at = EXCLUDED.expires_at
        """, (str(property_id), data_type, start_date, end_date, Json(data), ttl_minutes))
        conn.commit()
        cur.close()
        logger.info(f"Saved {data_type} snapshot for property {property_id} ({start_date}..{end_date}, ttl {ttl_minutes}m)")
    except Exception as e:
        conn.rollback()
        logger.error(f"Error saving {data_type} snapshot for property {property_id}: {e}")
        raise
    finally:
        conn.close()


def get_historical_snapshot(property_id: str, data_type: str, target_date: str) -> Optional[Dict[str, Any]]:
    """
    Latest snapshot (expired or not) whose date range covers target_date.

    Only snapshots stored with YYYY-MM-DD dates can match.
    """
    conn = get_connection()
    try:
        cur = conn.cursor()
        cur.execute(f"""
            SELECT data FROM {SNAPSHOT_TABLE}
            WHERE property_id = %s AND data_type = %s
              AND start_date <= %s AND end_date >= %s
            ORDER BY fetched_at DESC
            LIMIT 1
        """, (str(property_id), data_type, target_date, target_date))
        row = cur.fetchone()
        cur.close()
        return row[0] if row else None
    except Exception as e:
        logger.error(f"Error reading historical {data_type} snapshot for {target_date}: {e}")
        raise
    finally:
        conn.close()


def delete_expired_snapshots(keep_days: int = 30) -> int:
    """
    Удаляет снапшоты, истекшие более keep_days дней назад.

    Returns:
        Количество удаленных записей
    """
    conn = get_connection()
    try:
        cur = conn.cursor()
        ensure_snapshot_table(cur)
        cur.execute(
            f"DELETE FROM {SNAPSHOT_TABLE} WHERE expires_at < NOW() - %s * INTERVAL '1 day'",
            (keep_days,)
        )
        deleted = cur.rowcount
        conn.commit()
        cur.close()
        logger.info(f"Deleted {deleted} expired snapshots older than {keep_days} days")
        return deleted
    except Exception as e:
        conn.rollback()
        logger.error(f"Error deleting expired snapshots: {e}")
        raise
    finally:
        conn.close()
