"""Colony - Unitが存在する空間と匂いのグラフ

Unitのレジストリと、有向エッジID → 重み（匂い）のマッピングを持つ。
send() はEnvelopeを宛先Unitへ届け、成功したホップをエッジとして強化する。
decay() で全エッジを減衰させ、ranked_edges() でよく通る経路（ハイウェイ）を取り出す。

エッジの状態遷移:
    absent → active (mark_edge / send)
    active → active (mark_edge で増加、decay で減少)
    active → pruned (decay で prune_threshold を下回る)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core.activity_bus import ActivityBus, ActivityEvent, ActivityType
from ..core.config import ColonyConfig, UnitConfig, get_settings
from .envelope import Envelope, parse_target
from .errors import DuplicateUnitError, EnvelopeError, UnknownUnitError
from .tracker import HopTracker
from .unit import Unit

logger = logging.getLogger(__name__)

EDGE_SEPARATOR = " → "


def edge_id(origin: str, target: str) -> str:
    """送信元コンテキストと宛先ターゲットからエッジIDを生成"""
    return f"{origin}{EDGE_SEPARATOR}{target}"


@dataclass(frozen=True)
class RankedEdge:
    """ランキング済みエッジ"""

    edge: str
    weight: float

    def to_dict(self) -> dict[str, Any]:
        """可視化向けの辞書に変換"""
        return {"edge": self.edge, "weight": self.weight}


class Colony:
    """Unitのレジストリと学習されたエッジ重みグラフ

    units と edge_weights はこのインスタンスが排他的に所有する。
    """

    def __init__(
        self,
        config: ColonyConfig | None = None,
        unit_config: UnitConfig | None = None,
        activity_bus: ActivityBus | None = None,
        tracker: HopTracker | None = None,
    ) -> None:
        """
        Args:
            config: Colony設定。Noneの場合はグローバル設定を使用
            unit_config: spawnするUnitに渡す設定。Noneの場合はグローバル設定を使用
            activity_bus: 活動を配信するバス（任意）
            tracker: ホップを記録するトラッカー（任意）
        """
        self._config = config or get_settings().colony
        self._unit_config = unit_config or get_settings().unit
        self._units: dict[str, Unit] = {}
        self._edge_weights: dict[str, float] = {}
        self._bus = activity_bus
        self._tracker = tracker

    # =========================================================================
    # Unitレジストリ
    # =========================================================================

    def spawn(
        self,
        unit_id: str,
        operations: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
    ) -> Unit:
        """新しいUnitを生成して登録

        operations の値が呼び出し可能ならハンドラー、それ以外は定数結果として登録する。

        Args:
            unit_id: Unit ID
            operations: 操作名 → ハンドラーまたは定数

        Returns:
            生成されたUnit

        Raises:
            DuplicateUnitError: 同じIDのUnitが既に存在する場合
        """
        if unit_id in self._units:
            raise DuplicateUnitError(
                unit_id=unit_id,
                operation_name="",
                error=f"Unit already exists: {unit_id}",
            )

        unit = Unit(unit_id, route=self._route, config=self._unit_config)
        items = operations.items() if isinstance(operations, Mapping) else (operations or ())
        for name, value in items:
            if callable(value):
                unit.assign(name, value)
            else:
                unit.assign_constant(name, value)

        self._units[unit_id] = unit
        logger.info(f"Unit生成: {unit_id} (operations={unit.list_operations()})")
        self._publish(
            ActivityType.UNIT_SPAWNED,
            unit_id,
            f"Unit生成: {unit_id}",
            {"operations": unit.list_operations()},
        )
        return unit

    def spawn_from_dict(self, data: Mapping[str, Any]) -> Unit:
        """{"id": ..., "operations": {...}} 形式の辞書からUnitを生成

        "operations" の代わりに "actions" キーも受け付ける。
        """
        unit_id = data.get("id")
        if not isinstance(unit_id, str) or not unit_id:
            raise ValueError(f"Unit definition requires a non-empty string 'id': {data!r}")
        operations = data.get("operations", data.get("actions"))
        return self.spawn(unit_id, operations)

    def unregister(self, unit_id: str) -> bool:
        """UnitをレジストリからIDごと削除

        実行中の配送はそのまま完了する。

        Returns:
            削除した場合True
        """
        if self._units.pop(unit_id, None) is None:
            return False
        logger.info(f"Unit登録解除: {unit_id}")
        self._publish(ActivityType.UNIT_UNREGISTERED, unit_id, f"Unit登録解除: {unit_id}")
        return True

    def has(self, unit_id: str) -> bool:
        """Unitが登録されているか"""
        return unit_id in self._units

    def get(self, unit_id: str) -> Unit | None:
        """UnitをIDで取得"""
        return self._units.get(unit_id)

    def list_units(self) -> list[str]:
        """登録済みUnit IDの一覧"""
        return list(self._units)

    # =========================================================================
    # ルーティング
    # =========================================================================

    async def send(
        self,
        envelope: Envelope | Mapping[str, Any],
        origin: str | None = None,
        increment: float | None = None,
    ) -> Any:
        """Envelopeを宛先Unitへ届け、成功したホップのエッジを強化する

        エッジ "<origin> → <target>" はハンドラー成功直後、後続ホップの開始前に強化される。
        後続ホップの送信元はこのEnvelopeのターゲットになる。

        Args:
            envelope: Envelope またはワイヤ形式の辞書
            origin: 送信元コンテキスト。Noneの場合は default_origin
            increment: このホップの加算量。Noneの場合は default_increment

        Returns:
            チェーン末端の結果

        Raises:
            UnknownUnitError: 宛先Unitが存在しない場合
            EnvelopeError: 配送中の失敗（そのまま伝播）
        """
        envelope = Envelope.coerce(envelope)
        unit_id, operation_name = parse_target(
            envelope.target,
            self._unit_config.target_separator,
            self._unit_config.default_operation,
        )
        origin = origin or self._config.default_origin
        amount = self._config.default_increment if increment is None else increment
        self._check_amount(amount)

        unit = self._units.get(unit_id)
        if unit is None:
            raise UnknownUnitError(
                unit_id=unit_id,
                operation_name=operation_name,
                error=f"Unknown unit: {unit_id}",
                payload=envelope.payload,
            )

        edge = edge_id(origin, envelope.target)
        tracker = self._tracker
        hop = tracker.create(envelope.envelope_id, edge) if tracker is not None else None
        self._publish(ActivityType.HOP_STARTED, edge, f"ホップ開始: {edge}")

        try:
            result = await unit.deliver(envelope, on_success=lambda: self.mark_edge(edge, amount))
        except Exception as exc:
            error = exc.to_dict() if isinstance(exc, EnvelopeError) else str(exc)
            if tracker is not None and hop is not None:
                tracker.reject(hop.hop_id, error)
            self._publish(ActivityType.HOP_REJECTED, edge, f"ホップ失敗: {edge}", {"error": error})
            raise

        if tracker is not None and hop is not None:
            tracker.resolve(hop.hop_id, result)
        self._publish(ActivityType.HOP_RESOLVED, edge, f"ホップ完了: {edge}")
        return result

    async def _route(self, envelope: Envelope, origin: str) -> Any:
        """Unitから委譲された別Unit宛てのEnvelopeを送信"""
        return await self.send(envelope, origin=origin)

    # =========================================================================
    # 匂い（エッジ重み）
    # =========================================================================

    def mark_edge(self, edge: str, amount: float | None = None) -> float:
        """エッジを強化

        初回は amount から始まり、以降は加算される。amount が0の場合は何もしない。

        Returns:
            更新後の重み
        """
        amount = self._config.default_increment if amount is None else amount
        self._check_amount(amount)
        if amount == 0:
            return self.smell_edge(edge)

        weight = self._edge_weights.get(edge, 0.0) + amount
        self._edge_weights[edge] = weight
        logger.debug(f"エッジ強化: {edge} (+{amount} → {weight})")
        self._publish(
            ActivityType.EDGE_MARKED,
            edge,
            f"エッジ強化: {edge}",
            {"amount": amount, "weight": weight},
        )
        return weight

    def smell_edge(self, edge: str) -> float:
        """エッジの重みを取得。存在しなければ0"""
        return self._edge_weights.get(edge, 0.0)

    def edge_weights(self) -> dict[str, float]:
        """現在のエッジ重みのコピー"""
        return dict(self._edge_weights)

    def decay(self, rate: float | None = None) -> list[str]:
        """全エッジの重みに (1 - rate) を掛け、閾値を下回ったエッジを削除

        rate が0の場合は何もしない。

        Returns:
            削除されたエッジIDの一覧
        """
        rate = self._config.decay_rate if rate is None else rate
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"Decay rate must be within [0, 1], got {rate}")
        if rate == 0:
            return []

        factor = 1.0 - rate
        pruned: list[str] = []
        for edge in list(self._edge_weights):
            weight = self._edge_weights[edge] * factor
            if weight < self._config.prune_threshold:
                del self._edge_weights[edge]
                pruned.append(edge)
            else:
                self._edge_weights[edge] = weight

        logger.debug(
            f"減衰: rate={rate} remaining={len(self._edge_weights)} pruned={len(pruned)}"
        )
        self._publish(
            ActivityType.EDGES_DECAYED,
            "*",
            f"減衰: rate={rate}",
            {"rate": rate, "pruned": pruned},
        )
        return pruned

    def ranked_edges(self, limit: int | None = None) -> list[RankedEdge]:
        """重みの降順（同値はエッジIDの昇順）で上位 limit 件を返す"""
        limit = self._config.rank_limit if limit is None else limit
        if limit <= 0:
            return []
        return self._sorted_edges()[:limit]

    def highways(self, threshold: float | None = None) -> list[RankedEdge]:
        """重みが threshold 以上のエッジをランキング順で返す"""
        threshold = self._config.highway_threshold if threshold is None else threshold
        return [e for e in self._sorted_edges() if e.weight >= threshold]

    def export_edges(self, limit: int | None = None) -> list[dict[str, Any]]:
        """[{"edge": ..., "weight": ...}] 形式でランキングを出力"""
        return [e.to_dict() for e in self.ranked_edges(limit)]

    def snapshot(self) -> dict[str, Any]:
        """可視化向けのColony状態（プレーンデータ）"""
        return {
            "units": [
                {"id": unit.id, "operations": unit.list_operations()}
                for unit in self._units.values()
            ],
            "edges": [e.to_dict() for e in self._sorted_edges()],
        }

    def _sorted_edges(self) -> list[RankedEdge]:
        ordered = sorted(self._edge_weights.items(), key=lambda kv: (-kv[1], kv[0]))
        return [RankedEdge(edge=e, weight=w) for e, w in ordered]

    @staticmethod
    def _check_amount(amount: float) -> None:
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"Edge increment must be a non-negative finite number, got {amount}")

    def _publish(
        self,
        activity_type: ActivityType,
        subject: str,
        summary: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        if self._bus is None:
            return
        self._bus.publish_nowait(
            ActivityEvent(
                activity_type=activity_type,
                subject=subject,
                summary=summary,
                detail=detail or {},
            )
        )
