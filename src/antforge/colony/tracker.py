"""HopTracker - ホップ単位のPromise状態追跡

Colony.send の各ホップを pending → resolved / rejected のライフサイクルで記録する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ulid import ULID

from ..core.config import get_settings


class HopStatus(StrEnum):
    """ホップの状態"""

    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass
class HopRecord:
    """1ホップの記録"""

    label: str
    envelope_id: str
    hop_id: str = field(default_factory=lambda: str(ULID()))
    status: HopStatus = HopStatus.PENDING
    result: Any = None
    error: dict[str, Any] | str | None = None

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        d: dict[str, Any] = {
            "hop_id": self.hop_id,
            "label": self.label,
            "envelope_id": self.envelope_id,
            "status": str(self.status),
        }
        if self.status == HopStatus.RESOLVED:
            d["result"] = self.result
        if self.error is not None:
            d["error"] = self.error
        return d


class HopTracker:
    """ホップ記録の管理

    保持数は max_hops が上限で、超えた分は作成順に古いものから破棄する。
    """

    def __init__(self, max_hops: int | None = None) -> None:
        """
        Args:
            max_hops: 保持するホップ記録の上限。Noneの場合はグローバル設定を使用
        """
        self._max_hops = max_hops or get_settings().tracker.max_hops
        self._hops: dict[str, HopRecord] = {}

    def create(self, envelope_id: str, label: str) -> HopRecord:
        """pending状態のホップを作成"""
        hop = HopRecord(label=label, envelope_id=envelope_id)
        self._hops[hop.hop_id] = hop
        while len(self._hops) > self._max_hops:
            del self._hops[next(iter(self._hops))]
        return hop

    def resolve(self, hop_id: str, result: Any) -> None:
        """ホップを結果付きで完了にする。未知のIDは無視"""
        hop = self._hops.get(hop_id)
        if hop:
            hop.status = HopStatus.RESOLVED
            hop.result = result

    def reject(self, hop_id: str, error: dict[str, Any] | str | None = None) -> None:
        """ホップを失敗にする。未知のIDは無視"""
        hop = self._hops.get(hop_id)
        if hop:
            hop.status = HopStatus.REJECTED
            hop.error = error

    def get(self, hop_id: str) -> HopRecord | None:
        return self._hops.get(hop_id)

    def get_all(self) -> list[HopRecord]:
        return list(self._hops.values())

    def get_by_status(self, status: HopStatus) -> list[HopRecord]:
        return [h for h in self._hops.values() if h.status == status]

    def clear(self) -> None:
        self._hops.clear()
