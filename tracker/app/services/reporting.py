"""
Read-side dashboard aggregation and the daily analytics rollup.

Every dashboard metric is computed independently: a failing query is
logged and replaced by that metric's empty/zero default, so one broken
aggregate never takes the whole dashboard down.
"""

import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from tracker.app.db.migrate import get_connection, transaction
from tracker.app.errors import InvalidInput
from tracker.app.services.ledger import stock_summary
from tracker.app.services.provinces import province_name
from tracker.app.services.wib import TIMESTAMP_FORMAT, today_wib, wib_timestamp

logger = logging.getLogger(__name__)

PERIODS = ("today", "week", "month", "custom")

RECENT_PROTOCOL_LIMIT = 100
TOP_PROVINCES = 5

DAILY_TREND_DAYS = 30
HOURLY_DAYS = 7
STATUS_TREND_DAYS = 14


def default_stock() -> Dict[str, int]:
    return {"total_allocated": 0, "total_used": 0, "total_available": 0, "active_partner": 0}


def default_metrics() -> Dict[str, Any]:
    return {
        "total_protocols": 0,
        "unique_provinces": 0,
        "active_partner": 0,
        "avg_per_day": 0,
        "completion_rate": 0,
        "first_protocol": None,
        "latest_protocol": None,
    }


def _ts(day: date) -> str:
    return datetime(day.year, day.month, day.day).strftime(TIMESTAMP_FORMAT)


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidInput(f"{field} must be a date (YYYY-MM-DD)")


def period_window(
    period: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[str, Optional[str], bool]:
    """
    Resolve a dashboard period to ``(start, end, end_inclusive)`` WIB
    timestamps.

    ``week`` starts on the most recent Sunday, ``month`` on the 1st; both
    are open-ended. ``custom`` includes the whole end day; without both
    dates it falls back to today, as does any other period.
    """
    today = today or today_wib()

    if period == "week":
        # date.weekday(): Monday == 0, so Sunday is 6.
        since_sunday = (today.weekday() + 1) % 7
        return _ts(today - timedelta(days=since_sunday)), None, False
    if period == "month":
        return _ts(today.replace(day=1)), None, False
    if period == "custom" and start_date and end_date:
        start = _parse_date(start_date, "start_date")
        end = _parse_date(end_date, "end_date")
        if start > end:
            raise InvalidInput("start_date must not be after end_date")
        return _ts(start), f"{end.isoformat()} 23:59:59", True

    return _ts(today), _ts(today + timedelta(days=1)), False


def _window_clause(window: Tuple[str, Optional[str], bool]) -> Tuple[str, List[str]]:
    start, end, inclusive = window
    if end is None:
        return " WHERE p.created_at >= ?", [start]
    op = "<=" if inclusive else "<"
    return f" WHERE p.created_at >= ? AND p.created_at {op} ?", [start, end]


def _safe(name: str, default: Callable[[], Any], query: Callable[[], Any]) -> Any:
    try:
        return query()
    except sqlite3.Error:
        logger.exception("Dashboard metric %s failed; using default", name)
        return default()


def _rows(conn: sqlite3.Connection, sql: str, params=()) -> List[Dict[str, Any]]:
    return [dict(row) for row in conn.execute(sql, params).fetchall()]


def _status_stats(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    counts: Dict[str, int] = {}
    for row in rows:
        code = row["province_code"]
        counts[code] = counts.get(code, 0) + 1
    top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:TOP_PROVINCES]
    return {
        "total": len(rows),
        "created": sum(1 for r in rows if r["status"] == "created"),
        "delivered": sum(1 for r in rows if r["status"] == "delivered"),
        "terpakai": sum(1 for r in rows if r["status"] == "terpakai"),
        "topProvinces": [
            {"province_code": code, "count": count, "name": province_name(code)}
            for code, count in top
        ],
    }


def _default_stats() -> Dict[str, Any]:
    return {"total": 0, "created": 0, "delivered": 0, "terpakai": 0, "topProvinces": []}


def advanced_analytics(conn: sqlite3.Connection, today: Optional[date] = None) -> Dict[str, Any]:
    """Trend, ranking and overall metrics over fixed lookback windows."""
    today = today or today_wib()
    daily_cutoff = _ts(today - timedelta(days=DAILY_TREND_DAYS))
    hourly_cutoff = _ts(today - timedelta(days=HOURLY_DAYS))
    status_cutoff = _ts(today - timedelta(days=STATUS_TREND_DAYS))

    analytics: Dict[str, Any] = {}
    analytics["dailyTrends"] = _safe("dailyTrends", list, lambda: _rows(conn, """
        SELECT
            DATE(p.created_at) AS date,
            COUNT(*) AS total,
            SUM(CASE WHEN p.status = 'created' THEN 1 ELSE 0 END) AS created,
            SUM(CASE WHEN p.status = 'delivered' THEN 1 ELSE 0 END) AS delivered,
            SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) AS terpakai,
            COUNT(DISTINCT p.partner_id) AS unique_partner
        FROM protocols p
        WHERE p.created_at >= ?
        GROUP BY DATE(p.created_at)
        ORDER BY date DESC
    """, (daily_cutoff,)))

    analytics["hourlyDistribution"] = _safe("hourlyDistribution", list, lambda: _rows(conn, """
        SELECT strftime('%H', created_at) AS hour, COUNT(*) AS count
        FROM protocols
        WHERE created_at >= ?
        GROUP BY strftime('%H', created_at)
        ORDER BY hour
    """, (hourly_cutoff,)))

    analytics["partnerPerformance"] = _safe("partnerPerformance", list, lambda: _rows(conn, """
        SELECT
            pt.name AS partner_name,
            pt.type AS partner_type,
            pt.code AS partner_code,
            pt.province_code,
            COUNT(p.id) AS total_protocols,
            SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) AS used_protocols,
            ROUND(SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) * 100.0
                  / NULLIF(COUNT(p.id), 0), 2) AS usage_rate,
            DATE(MAX(p.created_at)) AS last_activity
        FROM partner pt
        LEFT JOIN protocols p ON pt.id = p.partner_id
        WHERE pt.is_active = 1
        GROUP BY pt.id
        HAVING COUNT(p.id) > 0
        ORDER BY total_protocols DESC
        LIMIT 10
    """))

    analytics["provincePerformance"] = _safe("provincePerformance", list, lambda: _rows(conn, """
        SELECT
            p.province_code,
            COUNT(p.id) AS count,
            SUM(CASE WHEN p.status = 'created' THEN 1 ELSE 0 END) AS created,
            SUM(CASE WHEN p.status = 'delivered' THEN 1 ELSE 0 END) AS delivered,
            SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) AS terpakai,
            ROUND(SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) * 100.0
                  / NULLIF(COUNT(p.id), 0), 2) AS usage_rate,
            COUNT(DISTINCT p.partner_id) AS active_partner
        FROM protocols p
        WHERE p.province_code IS NOT NULL
        GROUP BY p.province_code
        ORDER BY count DESC
        LIMIT 10
    """))

    analytics["statusTrends"] = _safe("statusTrends", list, lambda: _rows(conn, """
        SELECT DATE(created_at) AS date, status, COUNT(*) AS count
        FROM protocols
        WHERE created_at >= ?
        GROUP BY DATE(created_at), status
        ORDER BY date DESC, status
    """, (status_cutoff,)))

    def _metrics():
        row = conn.execute("""
            SELECT
                COUNT(p.id) AS total_protocols,
                COUNT(DISTINCT p.province_code) AS unique_provinces,
                COUNT(DISTINCT p.partner_id) AS active_partner,
                ROUND(COUNT(p.id) * 1.0 / NULLIF(COUNT(DISTINCT DATE(p.created_at)), 0), 2)
                    AS avg_per_day,
                ROUND(SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END) * 100.0
                      / NULLIF(COUNT(p.id), 0), 2) AS completion_rate,
                MIN(p.created_at) AS first_protocol,
                MAX(p.created_at) AS latest_protocol
            FROM protocols p
        """).fetchone()
        metrics = default_metrics()
        metrics.update({k: v for k, v in dict(row).items() if v is not None})
        return metrics

    analytics["metrics"] = _safe("metrics", default_metrics, _metrics)
    return analytics


def build_dashboard(
    period: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Aggregate the dashboard for one period.

    Raises:
        InvalidInput: custom period with malformed or reversed dates
    """
    window = period_window(period, start_date, end_date, today=today)
    where, params = _window_clause(window)

    conn = get_connection()
    try:
        protocols = _safe("protocols", list, lambda: _rows(conn, f"""
            SELECT p.*, pt.name AS partner_name, pt.type AS partner_type,
                pt.code AS partner_code
            FROM protocols p
            LEFT JOIN partner pt ON p.partner_id = pt.id
            {where}
            ORDER BY p.id DESC
            LIMIT {RECENT_PROTOCOL_LIMIT}
        """, params))

        stats = _safe("stats", _default_stats, lambda: _status_stats(_rows(conn, f"""
            SELECT p.status, p.province_code
            FROM protocols p
            {where}
        """, params)))

        stock = _safe("stock", default_stock, lambda: stock_summary(conn))
        analytics = advanced_analytics(conn, today=today)
    finally:
        conn.close()

    return {
        "period": period if period in PERIODS else "today",
        "window": {"start": window[0], "end": window[1]},
        "protocols": protocols,
        "stats": stats,
        "stock": stock,
        "analytics": analytics,
    }


def rollup_daily(day: Optional[date] = None) -> Dict[str, Any]:
    """
    Recompute one day's ``analytics_daily`` row (default: today, WIB).

    Protocol counts are by creation day and current status; user and scan
    counts come from that day's activity log.
    """
    day = day or today_wib()
    start, end = _ts(day), _ts(day + timedelta(days=1))

    with transaction() as conn:
        counts = conn.execute(
            """
            SELECT
                COUNT(*) AS total_protocols,
                COALESCE(SUM(CASE WHEN status = 'created' THEN 1 ELSE 0 END), 0) AS created_count,
                COALESCE(SUM(CASE WHEN status = 'delivered' THEN 1 ELSE 0 END), 0) AS delivered_count,
                COALESCE(SUM(CASE WHEN status = 'terpakai' THEN 1 ELSE 0 END), 0) AS terpakai_count
            FROM protocols
            WHERE created_at >= ? AND created_at < ?
        """,
            (start, end),
        ).fetchone()
        activity = conn.execute(
            """
            SELECT
                COUNT(DISTINCT user_id) AS unique_users,
                COALESCE(SUM(CASE WHEN action LIKE 'scan\\_%' ESCAPE '\\' THEN 1 ELSE 0 END), 0)
                    AS scan_count
            FROM activity_logs
            WHERE created_at >= ? AND created_at < ?
        """,
            (start, end),
        ).fetchone()

        row = {"date": day.isoformat(), **dict(counts), **dict(activity)}
        conn.execute(
            """
            INSERT INTO analytics_daily (
                date, total_protocols, created_count, delivered_count,
                terpakai_count, unique_users, scan_count, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                total_protocols = excluded.total_protocols,
                created_count = excluded.created_count,
                delivered_count = excluded.delivered_count,
                terpakai_count = excluded.terpakai_count,
                unique_users = excluded.unique_users,
                scan_count = excluded.scan_count,
                created_at = excluded.created_at
        """,
            (
                row["date"],
                row["total_protocols"],
                row["created_count"],
                row["delivered_count"],
                row["terpakai_count"],
                row["unique_users"],
                row["scan_count"],
                wib_timestamp(),
            ),
        )

    logger.info("Rolled up analytics for %s", row["date"])
    return row
