"""Colonyアクティビティバス

Colony内の活動（Unitの生成・削除、ホップの開始・完了・失敗、エッジの強化・減衰）を
購読・配信するイベントバス。

可視化やログ収集などの協調者に向けた配信基盤。Colonyごとに1インスタンスを持つ。
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Awaitable, Callable
from uuid import uuid4

from .config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# 列挙型
# =============================================================================


class ActivityType(StrEnum):
    """アクティビティの種別"""

    # Unitライフサイクル
    UNIT_SPAWNED = "unit.spawned"
    UNIT_UNREGISTERED = "unit.unregistered"

    # ホップ（1回のsend）
    HOP_STARTED = "hop.started"
    HOP_RESOLVED = "hop.resolved"
    HOP_REJECTED = "hop.rejected"

    # 匂い（エッジ重み）
    EDGE_MARKED = "edge.marked"
    EDGES_DECAYED = "edges.decayed"


# =============================================================================
# データクラス
# =============================================================================


@dataclass
class ActivityEvent:
    """アクティビティイベント

    subject はUnit IDまたはエッジIDなど、イベントの主体を表す。
    """

    activity_type: ActivityType
    subject: str
    summary: str
    detail: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: str(uuid4())[:8])

    def to_dict(self) -> dict[str, Any]:
        """配信用の辞書に変換"""
        return {
            "event_id": self.event_id,
            "activity_type": str(self.activity_type),
            "subject": self.subject,
            "summary": self.summary,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }


# =============================================================================
# ActivityBus
# =============================================================================

# サブスクライバーの型
ActivityHandler = Callable[[ActivityEvent], Awaitable[None]]


class ActivityBus:
    """Colonyアクティビティバス

    サブスクライバーパターンで活動を配信し、最近のイベントを保持する。
    """

    def __init__(self, max_recent_events: int | None = None) -> None:
        """
        Args:
            max_recent_events: 履歴の保持上限。Noneの場合はグローバル設定を使用
        """
        limit = max_recent_events or get_settings().activity.max_recent_events
        self._subscribers: list[ActivityHandler] = []
        self._recent_events: deque[ActivityEvent] = deque(maxlen=limit)
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, handler: ActivityHandler) -> None:
        """イベントハンドラーを登録"""
        self._subscribers.append(handler)

    def unsubscribe(self, handler: ActivityHandler) -> None:
        """イベントハンドラーを解除"""
        self._subscribers = [h for h in self._subscribers if h is not handler]

    async def emit(self, event: ActivityEvent) -> None:
        """イベントを発行

        全てのサブスクライバーに通知し、履歴に保存する。
        サブスクライバーのエラーは他のサブスクライバーに影響しない。
        """
        self._recent_events.append(event)

        for handler in list(self._subscribers):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    f"アクティビティハンドラーエラー: {getattr(handler, '__name__', handler)}"
                )

    def publish_nowait(self, event: ActivityEvent) -> None:
        """同期的な呼び出し元からイベントを発行

        実行中のイベントループがあれば配信をタスクとして予約する。
        ループがない場合は履歴への保存のみ行う。
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._recent_events.append(event)
            return

        task = loop.create_task(self.emit(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """予約済みの配信が全て完了するまで待つ"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def get_recent_events(
        self,
        limit: int | None = None,
        activity_type: ActivityType | None = None,
    ) -> list[ActivityEvent]:
        """最近のイベント履歴を取得"""
        events = list(self._recent_events)
        if activity_type is not None:
            events = [e for e in events if e.activity_type == activity_type]
        if limit is None:
            return events
        return events[-limit:] if limit > 0 else []
