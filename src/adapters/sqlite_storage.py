"""SQLite storage adapter.

Implements every core storage port (classification, usage, destinations,
delivery log) using a single SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

from core.models import (
    LEGACY_DESTINATION_ID,
    PRIORITIES,
    SUPPORT_STATUSES,
    Analysis,
    DefaultDestination,
    DeliveryRecord,
    Destination,
    Message,
    TokenUsage,
    UsageRecord,
)
from core.registry import DEFAULT_PRIORITY_FLAGS, DEFAULT_STATUS_FLAGS

PRIORITY_COLUMNS = {priority: f"send_{priority}" for priority in PRIORITIES}
STATUS_COLUMNS = {status: f"send_{status}" for status in SUPPORT_STATUSES}

# Columns overwritten when a message is reprocessed. id, created_at and the
# message metadata columns stay as first written.
_ANALYSIS_COLUMNS = (
    "support_status",
    "tone",
    "priority",
    "sentiment_score",
    "sentiment_confidence",
    "needs_response",
    "summary",
    "topics",
    "suggested_actions",
    "customer_mood_description",
    "customer_mood_emoji",
    "has_code",
    "has_error",
    "has_screenshot",
    "mentions_version",
    "routed_destination",
    "routing_confidence",
    "routing_reasoning",
    "model_used",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "processing_cost",
    "processing_time_ms",
)


def _flag_columns_sql(defaults_priority, defaults_status) -> str:
    lines = [
        f"{column} INTEGER NOT NULL DEFAULT {int(defaults_priority[key])}"
        for key, column in PRIORITY_COLUMNS.items()
    ]
    lines.extend(
        f"{column} INTEGER NOT NULL DEFAULT {int(defaults_status[key])}"
        for key, column in STATUS_COLUMNS.items()
    )
    return ",\n".join(lines)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _loads_list(value: Optional[str]) -> list[Any]:
    if not value:
        return []
    return json.loads(value)


def _message_log_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for key in ("topics", "suggested_actions", "mentioned_users", "mentioned_roles"):
        data[key] = _loads_list(data.get(key))
    for key in ("needs_response", "has_code", "has_error", "has_screenshot", "mentions_version", "is_thread", "mentions_everyone"):
        if data.get(key) is not None:
            data[key] = bool(data[key])
    return data


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the core storage ports."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - message_logs: latest analysis per message (upsert by message_id)
        - usage: append-only log of inference attempts for billing
        - destinations: named webhook destinations with filter flags
        - default_destination: single-row legacy fallback configuration
        - delivery_log: one row per (message, destination) webhook attempt
        """

        flag_columns = _flag_columns_sql(DEFAULT_PRIORITY_FLAGS, DEFAULT_STATUS_FLAGS)
        with self._connect() as conn:
            # message_logs is keyed by the Discord message id; reprocessing a
            # message overwrites the analysis columns in place.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS message_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TIMESTAMP NOT NULL,
                    message_id TEXT NOT NULL UNIQUE,
                    message_content TEXT,
                    message_timestamp TIMESTAMP,
                    author_id TEXT NOT NULL,
                    author_tag TEXT NOT NULL,
                    author_avatar TEXT,
                    channel_id TEXT NOT NULL,
                    channel_name TEXT NOT NULL,
                    server_id TEXT NOT NULL,
                    server_name TEXT NOT NULL,
                    support_status TEXT,
                    tone TEXT,
                    priority TEXT,
                    sentiment_score REAL,
                    sentiment_confidence REAL,
                    needs_response INTEGER,
                    summary TEXT,
                    topics TEXT,
                    suggested_actions TEXT,
                    customer_mood_description TEXT,
                    customer_mood_emoji TEXT,
                    has_code INTEGER DEFAULT 0,
                    has_error INTEGER DEFAULT 0,
                    has_screenshot INTEGER DEFAULT 0,
                    mentions_version INTEGER DEFAULT 0,
                    attachment_count INTEGER DEFAULT 0,
                    routed_destination TEXT,
                    routing_confidence REAL,
                    routing_reasoning TEXT,
                    model_used TEXT,
                    prompt_tokens INTEGER DEFAULT 0,
                    completion_tokens INTEGER DEFAULT 0,
                    total_tokens INTEGER DEFAULT 0,
                    processing_cost REAL DEFAULT 0,
                    processing_time_ms INTEGER,
                    thread_id TEXT,
                    parent_channel_id TEXT,
                    is_thread INTEGER DEFAULT 0,
                    mentioned_users TEXT,
                    mentioned_roles TEXT,
                    mentions_everyone INTEGER DEFAULT 0
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_message_logs_created_at ON message_logs(created_at DESC)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_message_logs_channel_id ON message_logs(channel_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_message_logs_priority ON message_logs(priority)")

            # usage is an append-only ledger: failures are rows too, flagged
            # with error_occurred so spend and error rates can be audited.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TIMESTAMP NOT NULL,
                    message_id TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    author_tag TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    channel_name TEXT NOT NULL,
                    server_id TEXT NOT NULL,
                    server_name TEXT NOT NULL,
                    model TEXT NOT NULL,
                    prompt_tokens INTEGER DEFAULT 0,
                    completion_tokens INTEGER DEFAULT 0,
                    total_tokens INTEGER NOT NULL,
                    input_cost REAL DEFAULT 0,
                    output_cost REAL DEFAULT 0,
                    total_cost REAL NOT NULL,
                    support_status TEXT,
                    tone TEXT,
                    priority TEXT,
                    sentiment_score REAL,
                    needs_response INTEGER,
                    summary TEXT,
                    processing_time_ms INTEGER,
                    error_occurred INTEGER DEFAULT 0,
                    error_message TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_created_at ON usage(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_message_id ON usage(message_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_model ON usage(model)")

            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS destinations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    name TEXT NOT NULL UNIQUE,
                    description TEXT NOT NULL,
                    webhook_url TEXT NOT NULL,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    {flag_columns},
                    only_needs_response INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS default_destination (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    webhook_url TEXT,
                    enabled INTEGER NOT NULL DEFAULT 0,
                    {flag_columns},
                    min_sentiment_score REAL NOT NULL DEFAULT -1.0,
                    max_sentiment_score REAL NOT NULL DEFAULT 1.0,
                    only_needs_response INTEGER NOT NULL DEFAULT 0,
                    description TEXT NOT NULL DEFAULT 'Default webhook settings'
                )
                """
            )
            now = _now()
            conn.execute(
                "INSERT OR IGNORE INTO default_destination (id, created_at, updated_at) VALUES (1, ?, ?)",
                (now, now),
            )

            # delivery_log holds at most one row per (message, destination).
            # destination_id 0 is the legacy default destination.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS delivery_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TIMESTAMP NOT NULL,
                    message_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    destination_id INTEGER NOT NULL,
                    webhook_url TEXT NOT NULL,
                    success INTEGER NOT NULL DEFAULT 0,
                    response_status INTEGER,
                    error_message TEXT,
                    routed_by_ai INTEGER NOT NULL DEFAULT 0,
                    routing_confidence REAL,
                    UNIQUE(message_id, destination_id)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_delivery_log_created_at ON delivery_log(created_at DESC)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_delivery_log_destination ON delivery_log(destination_id)")

    # -- classification store -------------------------------------------------

    def upsert_message_log(
        self,
        message: Message,
        analysis: Analysis,
        usage: TokenUsage,
        model: str,
        processing_cost: float,
        duration_ms: int,
    ) -> None:
        """Insert the analysis row or overwrite its analysis columns."""

        routing = analysis.team_routing
        values = {
            "created_at": _now(),
            "message_id": message.id,
            "message_content": message.content,
            "message_timestamp": message.timestamp.isoformat(),
            "author_id": message.author.id,
            "author_tag": message.author.tag,
            "author_avatar": message.author.avatar_url,
            "channel_id": message.channel.id,
            "channel_name": message.channel.name,
            "server_id": message.server.id,
            "server_name": message.server.name,
            "support_status": analysis.support_status,
            "tone": analysis.tone,
            "priority": analysis.priority,
            "sentiment_score": analysis.sentiment.score,
            "sentiment_confidence": analysis.sentiment.confidence,
            "needs_response": int(analysis.needs_response),
            "summary": analysis.summary,
            "topics": json.dumps(list(analysis.topics)),
            "suggested_actions": json.dumps(list(analysis.suggested_actions)),
            "customer_mood_description": analysis.customer_mood.description,
            "customer_mood_emoji": analysis.customer_mood.emoji,
            "has_code": int(analysis.technical_details.has_code),
            "has_error": int(analysis.technical_details.has_error),
            "has_screenshot": int(analysis.technical_details.has_screenshot),
            "mentions_version": int(analysis.technical_details.mentions_version),
            "attachment_count": len(message.attachments),
            "routed_destination": routing.recommended_destination if routing else None,
            "routing_confidence": routing.confidence if routing else None,
            "routing_reasoning": routing.reasoning if routing else None,
            "model_used": model,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "processing_cost": processing_cost,
            "processing_time_ms": duration_ms,
            "thread_id": message.channel.id if message.channel.is_thread else None,
            "parent_channel_id": message.channel.parent_id,
            "is_thread": int(message.channel.is_thread),
            "mentioned_users": json.dumps(list(message.mentions.users)),
            "mentioned_roles": json.dumps(list(message.mentions.roles)),
            "mentions_everyone": int(message.mentions.everyone),
        }
        columns = ", ".join(values)
        placeholders = ", ".join(f":{key}" for key in values)
        updates = ",\n".join(f"{column} = excluded.{column}" for column in _ANALYSIS_COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO message_logs ({columns}) VALUES ({placeholders})
                ON CONFLICT(message_id) DO UPDATE SET
                {updates}
                """,
                values,
            )

    def recent_message_logs(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM message_logs ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [_message_log_row(row) for row in rows]

    def message_logs_by_channel(self, channel_id: str, limit: int = 50) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM message_logs
                WHERE channel_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (channel_id, limit),
            ).fetchall()
        return [_message_log_row(row) for row in rows]

    def message_logs_needing_response(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM message_logs
                WHERE needs_response = 1
                ORDER BY
                    CASE priority
                        WHEN 'critical' THEN 1
                        WHEN 'high' THEN 2
                        WHEN 'medium' THEN 3
                        WHEN 'low' THEN 4
                        ELSE 5
                    END,
                    created_at DESC,
                    id DESC
                """
            ).fetchall()
        return [_message_log_row(row) for row in rows]

    def message_log_stats(self) -> dict[str, Any]:
        """Dashboard counters for the last 24 hours."""

        cutoff = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat()
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_messages,
                    COALESCE(SUM(CASE WHEN needs_response = 1 THEN 1 ELSE 0 END), 0) AS needs_response_count,
                    COALESCE(SUM(CASE WHEN priority = 'critical' THEN 1 ELSE 0 END), 0) AS critical_count,
                    COALESCE(SUM(CASE WHEN priority = 'high' THEN 1 ELSE 0 END), 0) AS high_count,
                    AVG(sentiment_score) AS avg_sentiment,
                    COALESCE(SUM(total_tokens), 0) AS total_tokens_used,
                    COALESCE(SUM(processing_cost), 0) AS total_cost
                FROM message_logs
                WHERE created_at >= ?
                """,
                (cutoff,),
            ).fetchone()
        return dict(row)

    def search_message_logs(
        self,
        priority: Optional[str] = None,
        support_status: Optional[str] = None,
        needs_response: Optional[bool] = None,
        text: Optional[str] = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if priority:
            clauses.append("priority = ?")
            params.append(priority)
        if support_status:
            clauses.append("support_status = ?")
            params.append(support_status)
        if needs_response is not None:
            clauses.append("needs_response = ?")
            params.append(int(needs_response))
        if text:
            clauses.append("(message_content LIKE ? OR summary LIKE ? OR author_tag LIKE ?)")
            pattern = f"%{text}%"
            params.extend([pattern, pattern, pattern])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM message_logs {where} ORDER BY created_at DESC, id DESC LIMIT ?",
                params,
            ).fetchall()
        return [_message_log_row(row) for row in rows]

    # -- usage ledger ---------------------------------------------------------

    def save_usage(self, record: UsageRecord) -> None:
        """Append one inference attempt to the usage ledger."""

        analysis = record.analysis
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO usage (
                    created_at, message_id, author_id, author_tag, channel_id,
                    channel_name, server_id, server_name, model,
                    prompt_tokens, completion_tokens, total_tokens,
                    input_cost, output_cost, total_cost,
                    support_status, tone, priority, sentiment_score,
                    needs_response, summary, processing_time_ms,
                    error_occurred, error_message
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _now(),
                    record.message_id,
                    record.author_id,
                    record.author_tag,
                    record.channel_id,
                    record.channel_name,
                    record.server_id,
                    record.server_name,
                    record.model,
                    record.usage.prompt_tokens,
                    record.usage.completion_tokens,
                    record.usage.total_tokens,
                    record.cost.input_cost,
                    record.cost.output_cost,
                    record.cost.total_cost,
                    analysis.support_status,
                    analysis.tone,
                    analysis.priority,
                    analysis.sentiment.score,
                    int(analysis.needs_response),
                    analysis.summary,
                    record.processing_time_ms,
                    int(record.error_occurred),
                    record.error_message,
                ),
            )

    def list_usage(self, message_id: Optional[str] = None, limit: int = 50) -> list[dict[str, Any]]:
        with self._connect() as conn:
            if message_id:
                rows = conn.execute(
                    "SELECT * FROM usage WHERE message_id = ? ORDER BY id DESC LIMIT ?",
                    (message_id, limit),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM usage ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(row) for row in rows]

    def usage_summary(self, days: int = 30) -> dict[str, Any]:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_messages,
                    COALESCE(SUM(total_tokens), 0) AS total_tokens,
                    COALESCE(SUM(total_cost), 0) AS total_cost,
                    AVG(total_tokens) AS avg_tokens_per_message,
                    AVG(total_cost) AS avg_cost_per_message,
                    COALESCE(SUM(error_occurred), 0) AS error_count,
                    MIN(created_at) AS first_message,
                    MAX(created_at) AS last_message
                FROM usage
                WHERE created_at >= ?
                """,
                (cutoff,),
            ).fetchone()
        return dict(row)

    def usage_by_model(self, days: int = 30) -> list[dict[str, Any]]:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    model,
                    COUNT(*) AS message_count,
                    SUM(total_tokens) AS total_tokens,
                    SUM(total_cost) AS total_cost,
                    AVG(processing_time_ms) AS avg_processing_time
                FROM usage
                WHERE created_at >= ?
                GROUP BY model
                ORDER BY total_cost DESC
                """,
                (cutoff,),
            ).fetchall()
        return [dict(row) for row in rows]

    def top_channels_by_usage(self, limit: int = 10) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    channel_id,
                    channel_name,
                    server_name,
                    COUNT(*) AS message_count,
                    SUM(total_tokens) AS total_tokens,
                    SUM(total_cost) AS total_cost,
                    AVG(sentiment_score) AS avg_sentiment
                FROM usage
                GROUP BY channel_id, channel_name, server_name
                ORDER BY total_cost DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]

    # -- destination registry -------------------------------------------------

    @staticmethod
    def _flag_values(values: dict[str, Any]) -> dict[str, int]:
        flags: dict[str, int] = {}
        for key, column in PRIORITY_COLUMNS.items():
            flags[column] = int(bool(values["send_priorities"].get(key, False)))
        for key, column in STATUS_COLUMNS.items():
            flags[column] = int(bool(values["send_statuses"].get(key, False)))
        return flags

    @staticmethod
    def _row_flags(row: sqlite3.Row) -> tuple[dict[str, bool], dict[str, bool]]:
        priorities = {key: bool(row[column]) for key, column in PRIORITY_COLUMNS.items()}
        statuses = {key: bool(row[column]) for key, column in STATUS_COLUMNS.items()}
        return priorities, statuses

    def _to_destination(self, row: sqlite3.Row) -> Destination:
        priorities, statuses = self._row_flags(row)
        return Destination(
            id=int(row["id"]),
            name=row["name"],
            description=row["description"],
            webhook_url=row["webhook_url"],
            enabled=bool(row["enabled"]),
            send_priorities=priorities,
            send_statuses=statuses,
            only_needs_response=bool(row["only_needs_response"]),
        )

    def list_destinations(self, enabled_only: bool = False) -> list[Destination]:
        query = "SELECT * FROM destinations"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY name ASC"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._to_destination(row) for row in rows]

    def get_destination(self, destination_id: int) -> Optional[Destination]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM destinations WHERE id = ?", (destination_id,)).fetchone()
        return self._to_destination(row) if row else None

    def insert_destination(self, values: dict[str, Any]) -> Destination:
        now = _now()
        row_values = {
            "created_at": now,
            "updated_at": now,
            "name": values["name"],
            "description": values["description"],
            "webhook_url": values["webhook_url"],
            "enabled": int(values["enabled"]),
            "only_needs_response": int(values["only_needs_response"]),
            **self._flag_values(values),
        }
        columns = ", ".join(row_values)
        placeholders = ", ".join(f":{key}" for key in row_values)
        with self._connect() as conn:
            cur = conn.execute(
                f"INSERT INTO destinations ({columns}) VALUES ({placeholders})",
                row_values,
            )
            destination_id = cur.lastrowid
        destination = self.get_destination(int(destination_id))
        if destination is None:
            raise RuntimeError("Destination insert did not persist")
        return destination

    def update_destination(self, destination_id: int, values: dict[str, Any]) -> Optional[Destination]:
        row_values = {
            "updated_at": _now(),
            "name": values["name"],
            "description": values["description"],
            "webhook_url": values["webhook_url"],
            "enabled": int(values["enabled"]),
            "only_needs_response": int(values["only_needs_response"]),
            **self._flag_values(values),
        }
        assignments = ", ".join(f"{key} = :{key}" for key in row_values)
        row_values["id"] = destination_id
        with self._connect() as conn:
            cur = conn.execute(f"UPDATE destinations SET {assignments} WHERE id = :id", row_values)
            if cur.rowcount == 0:
                return None
        return self.get_destination(destination_id)

    def delete_destination(self, destination_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM destinations WHERE id = ?", (destination_id,))
            return cur.rowcount > 0

    def get_default_destination(self) -> Optional[DefaultDestination]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM default_destination WHERE id = 1").fetchone()
        if row is None:
            return None
        priorities, statuses = self._row_flags(row)
        return DefaultDestination(
            webhook_url=row["webhook_url"],
            enabled=bool(row["enabled"]),
            send_priorities=priorities,
            send_statuses=statuses,
            only_needs_response=bool(row["only_needs_response"]),
            min_sentiment_score=float(row["min_sentiment_score"]),
            max_sentiment_score=float(row["max_sentiment_score"]),
            description=row["description"],
        )

    def update_default_destination(self, values: dict[str, Any]) -> DefaultDestination:
        row_values: dict[str, Any] = {"updated_at": _now()}
        for key in ("webhook_url", "min_sentiment_score", "max_sentiment_score", "description"):
            if key in values:
                row_values[key] = values[key]
        for key in ("enabled", "only_needs_response"):
            if key in values:
                row_values[key] = int(bool(values[key]))
        if "send_priorities" in values and "send_statuses" in values:
            row_values.update(self._flag_values(values))
        assignments = ", ".join(f"{key} = :{key}" for key in row_values)
        with self._connect() as conn:
            conn.execute(f"UPDATE default_destination SET {assignments} WHERE id = 1", row_values)
        updated = self.get_default_destination()
        if updated is None:
            raise RuntimeError("default_destination row is missing; run init_db first")
        return updated

    # -- delivery log ---------------------------------------------------------

    def record_delivery(self, record: DeliveryRecord) -> bool:
        """Log a webhook attempt; returns False when the pair is already delivered.

        A successful row is final. A failed row may be replaced by a later
        attempt for the same (message, destination).
        """

        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO delivery_log (
                    created_at, message_id, channel_id, destination_id, webhook_url,
                    success, response_status, error_message, routed_by_ai, routing_confidence
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(message_id, destination_id) DO UPDATE SET
                    created_at = excluded.created_at,
                    webhook_url = excluded.webhook_url,
                    success = excluded.success,
                    response_status = excluded.response_status,
                    error_message = excluded.error_message,
                    routed_by_ai = excluded.routed_by_ai,
                    routing_confidence = excluded.routing_confidence
                WHERE delivery_log.success = 0
                """,
                (
                    _now(),
                    record.message_id,
                    record.channel_id,
                    record.destination_id,
                    record.webhook_url,
                    int(record.success),
                    record.status_code,
                    record.error_message,
                    int(record.routing_confidence is not None),
                    record.routing_confidence,
                ),
            )
            return cur.rowcount > 0

    def list_deliveries(
        self,
        destination_id: Optional[int] = None,
        message_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if destination_id is not None:
            clauses.append("d.destination_id = ?")
            params.append(destination_id)
        if message_id is not None:
            clauses.append("d.message_id = ?")
            params.append(message_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT d.*,
                    CASE WHEN d.destination_id = {LEGACY_DESTINATION_ID} THEN 'default'
                         ELSE COALESCE(t.name, '(deleted)') END AS destination_name
                FROM delivery_log d
                LEFT JOIN destinations t ON t.id = d.destination_id
                {where}
                ORDER BY d.created_at DESC, d.id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        result = []
        for row in rows:
            data = dict(row)
            data["success"] = bool(data["success"])
            data["routed_by_ai"] = bool(data["routed_by_ai"])
            result.append(data)
        return result
