"""
Admin dashboard, chat-log browsing and usage analytics.
"""

import re
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .models import CHAT_STATUS_ERROR, CHAT_STATUS_SUCCESS, ChatLogEntry, parse_iso_datetime, utcnow
from .repositories import (
    ChatLogRepository,
    Clock,
    EventRepository,
    NoticeRepository,
    RegistrationRepository,
)

DASHBOARD_LOG_COUNT = 10
ANALYTICS_LOG_COUNT = 1000
MAX_PAGE_FETCH = 500

KEYWORD_STOPWORDS = frozenset({"what", "when", "where", "how", "why", "which", "about", "ifhe"})


def _truncate(text: str, length: int = 100) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def _success_rate(logs: List[ChatLogEntry]) -> float:
    if not logs:
        return 0.0
    successes = sum(1 for log in logs if log.status == CHAT_STATUS_SUCCESS)
    return round(successes / len(logs) * 100, 2)


def _status_tally() -> Dict[str, int]:
    return {"total": 0, CHAT_STATUS_SUCCESS: 0, CHAT_STATUS_ERROR: 0}


class AdminAnalytics:
    """Read-only aggregations over the portal tables."""

    def __init__(
        self,
        events: EventRepository,
        notices: NoticeRepository,
        registrations: RegistrationRepository,
        chat_logs: ChatLogRepository,
        *,
        clock: Clock = utcnow,
    ):
        self.events = events
        self.notices = notices
        self.registrations = registrations
        self.chat_logs = chat_logs
        self._clock = clock

    async def dashboard(self) -> Dict[str, Any]:
        events = await self.events.list_upcoming()
        notices = await self.notices.list_visible()
        logs = await self.chat_logs.recent(DASHBOARD_LOG_COUNT)
        registrations = await self.registrations.list_all()

        today = self._clock().date().isoformat()
        model_usage = Counter(log.model_used for log in logs if log.model_used)
        recent_errors = [log for log in logs if log.status == CHAT_STATUS_ERROR][:5]

        return {
            "overview": {
                "total_events": len(events),
                "total_notices": len(notices),
                "total_registrations": len(registrations),
                "total_chat_sessions": len(logs),
            },
            "today": {
                "chats": sum(1 for log in logs if log.timestamp.startswith(today)),
                "registrations": sum(1 for r in registrations if r.registered_at.startswith(today)),
                "date": today,
            },
            "ai_models": {
                "usage": dict(model_usage),
                "total_queries": len(logs),
            },
            "recent_activity": {
                "latest_chats": [
                    {
                        "timestamp": log.timestamp,
                        "question": _truncate(log.question),
                        "model_used": log.model_used,
                        "status": log.status,
                    }
                    for log in logs[:5]
                ],
                "recent_errors": [
                    {
                        "timestamp": log.timestamp,
                        "question": _truncate(log.question),
                        "error": log.error,
                    }
                    for log in recent_errors
                ],
            },
        }

    async def chat_logs_page(self, limit: int = 50, offset: int = 0, status: Optional[str] = None) -> Dict[str, Any]:
        """Newest-first page of chat logs plus success statistics over the fetched window."""
        limit = max(limit, 0)
        offset = max(offset, 0)
        logs = await self.chat_logs.recent(min(limit + offset + 50, MAX_PAGE_FETCH))
        if status:
            logs = [log for log in logs if log.status == status]

        total = len(logs)
        return {
            "logs": [log.to_dict() for log in logs[offset:offset + limit]],
            "pagination": {
                "total": total,
                "offset": offset,
                "limit": limit,
                "has_more": offset + limit < total,
            },
            "stats": {
                "success_rate": _success_rate(logs),
                "total_queries": total,
                "error_count": sum(1 for log in logs if log.status == CHAT_STATUS_ERROR),
            },
        }

    async def analytics(self, days: int = 7) -> Dict[str, Any]:
        now = self._clock()
        cutoff = now - timedelta(days=days)
        logs = await self.chat_logs.recent(ANALYTICS_LOG_COUNT)
        recent = []
        for log in logs:
            logged_at = parse_iso_datetime(log.timestamp)
            if logged_at is not None and logged_at >= cutoff:
                recent.append(log)

        daily: Dict[str, Dict[str, int]] = defaultdict(_status_tally)
        by_model: Dict[str, Dict[str, int]] = defaultdict(_status_tally)
        keywords: Counter = Counter()

        for log in recent:
            for tally in (daily[log.timestamp.split("T")[0]], by_model[log.model_used]):
                tally["total"] += 1
                tally[log.status] = tally.get(log.status, 0) + 1
            keywords.update(
                word for word in re.split(r"\s+", log.question.lower())
                if len(word) > 3 and word not in KEYWORD_STOPWORDS
            )

        return {
            "period": {
                "days": days,
                "start_date": cutoff.date().isoformat(),
                "end_date": now.date().isoformat(),
            },
            "daily_activity": [{"date": date, **daily[date]} for date in sorted(daily)],
            "top_keywords": [{"keyword": word, "count": count} for word, count in keywords.most_common(10)],
            "model_performance": [
                {
                    "model": model,
                    **stats,
                    "success_rate": round(stats[CHAT_STATUS_SUCCESS] / stats["total"] * 100, 2),
                }
                for model, stats in by_model.items()
            ],
            "summary": {
                "total_queries": len(recent),
                "success_rate": _success_rate(recent),
                "avg_queries_per_day": round(len(recent) / max(days, 1), 1),
            },
        }
