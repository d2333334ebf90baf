"""Sliding-window submission rate limiter.

Counts submissions per (hashed IP, target) in Cassandra. Only the newest
window that started within ``rate_limit_window_seconds`` is consulted; older
windows are ignored and removed by ``sweep``.

The limiter fails open: a storage error never blocks a submitter.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from .config import ModerationConfig
from .models import CommentTarget, RateLimitWindow


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: datetime
    error: str | None = None


def _as_utc(value: datetime) -> datetime:
    # Cassandra returns naive UTC timestamps
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class RateLimiter:
    """Persistence-backed rate limiter for comment submissions."""

    def __init__(self, session: "Session", keyspace: str, config: ModerationConfig):
        self.session = session
        self.keyspace = keyspace
        self.config = config
        self._prepare_statements()

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.config.rate_limit_window_seconds)

    def _prepare_statements(self) -> None:
        self._get_latest_window = self.session.prepare(f"""
            SELECT ip_hash, target_type, target_id, window_start, count
            FROM {self.keyspace}.comment_rate_limits
            WHERE ip_hash = ? AND target_type = ? AND target_id = ?
            AND window_start >= ?
            LIMIT 1
        """)

        self._update_window = self.session.prepare(f"""
            UPDATE {self.keyspace}.comment_rate_limits
            SET count = ?
            WHERE ip_hash = ? AND target_type = ? AND target_id = ?
            AND window_start = ?
        """)

        self._insert_window = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_rate_limits
            (ip_hash, target_type, target_id, window_start, count)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._get_expired_windows = self.session.prepare(f"""
            SELECT ip_hash, target_type, target_id, window_start
            FROM {self.keyspace}.comment_rate_limits
            WHERE window_start < ?
            ALLOW FILTERING
        """)

        self._delete_window = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_rate_limits
            WHERE ip_hash = ? AND target_type = ? AND target_id = ?
            AND window_start = ?
        """)

    async def _latest_window(
        self, ip_hash: str, target: CommentTarget, now: datetime
    ) -> RateLimitWindow | None:
        rows = await self.session.aexecute(
            self._get_latest_window,
            [ip_hash, target.target_type.value, target.target_id, now - self.window],
        )
        row = next(iter(rows), None)
        return RateLimitWindow.from_row(row) if row else None

    async def check(
        self,
        ip_hash: str,
        target: CommentTarget,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Check whether another submission is allowed in the current window."""
        now = now or datetime.now(UTC)
        max_comments = self.config.rate_limit_max

        try:
            current = await self._latest_window(ip_hash, target, now)
        except Exception as e:
            logger.warning(
                "rate_limit_check_failed",
                error=str(e),
                ip_hash=ip_hash,
                target_type=target.target_type.value,
                target_id=str(target.target_id),
            )
            return RateLimitResult(
                allowed=True,
                remaining=max_comments,
                reset_time=now + self.window,
                error="Rate limit check failed",
            )

        if current is None:
            return RateLimitResult(
                allowed=True,
                remaining=max_comments,
                reset_time=now + self.window,
            )

        return RateLimitResult(
            allowed=current.count < max_comments,
            remaining=max(0, max_comments - current.count),
            reset_time=_as_utc(current.window_start) + self.window,
        )

    async def increment(
        self,
        ip_hash: str,
        target: CommentTarget,
        now: datetime | None = None,
    ) -> None:
        """Count one submission against the current window.

        Read-then-write, not atomic: concurrent submissions may under-count.
        Storage errors are logged and swallowed.
        """
        now = now or datetime.now(UTC)

        try:
            current = await self._latest_window(ip_hash, target, now)
            if current is not None:
                await self.session.aexecute(
                    self._update_window,
                    [
                        current.count + 1,
                        ip_hash,
                        target.target_type.value,
                        target.target_id,
                        current.window_start,
                    ],
                )
            else:
                await self.session.aexecute(
                    self._insert_window,
                    [ip_hash, target.target_type.value, target.target_id, now, 1],
                )
        except Exception as e:
            logger.warning(
                "rate_limit_increment_failed",
                error=str(e),
                ip_hash=ip_hash,
                target_type=target.target_type.value,
                target_id=str(target.target_id),
            )

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete windows older than window * sweep multiplier.

        Returns:
            Number of windows deleted
        """
        now = now or datetime.now(UTC)
        cutoff = now - self.window * self.config.rate_limit_sweep_multiplier

        rows = await self.session.aexecute(self._get_expired_windows, [cutoff])

        deleted = 0
        for row in rows:
            await self.session.aexecute(
                self._delete_window,
                [row.ip_hash, row.target_type, row.target_id, row.window_start],
            )
            deleted += 1

        logger.info("rate_limit_sweep_completed", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
