"""Unit - アドレス可能なアクター

名前付き非同期操作の束。唯一の入口 deliver() でEnvelopeを受け取り、結果を返す。
Unitは他のUnitやColonyを知らない。別Unit宛ての後続Envelopeは
生成時に渡されたルーティング関数へ委譲する。
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ..core.config import UnitConfig, get_settings
from .envelope import Envelope, parse_target, substitute
from .errors import (
    EnvelopeError,
    HandlerError,
    MalformedEnvelopeError,
    UnknownOperationError,
)

logger = logging.getLogger(__name__)

# 登録されるハンドラー（同期・非同期どちらでも可）
Handler = Callable[[Any], Any]
# Unit内部で保持する正規化済みの操作
Operation = Callable[[Any], Awaitable[Any]]
# 別Unit宛てEnvelopeのルーティング関数: (次のEnvelope, 送信元ターゲット) -> 結果
RouteFn = Callable[[Envelope, str], Awaitable[Any]]
# 操作の結果から後続Envelope（またはワイヤ形式の辞書）を作るテンプレート
Template = Callable[[Any], Envelope | Mapping[str, Any]]


class Unit:
    """名前付き操作を公開するアクター

    操作テーブルはUnitが排他的に所有し、外部からは deliver() 経由でのみ利用する。
    同名の操作を再登録すると後勝ちで上書きされる。
    """

    def __init__(
        self,
        unit_id: str,
        route: RouteFn | None = None,
        config: UnitConfig | None = None,
    ) -> None:
        """
        Args:
            unit_id: Unitの識別子（生成後は不変）
            route: 別Unit宛ての後続Envelopeを渡すルーティング関数
            config: Unit設定。Noneの場合はグローバル設定を使用
        """
        if not unit_id:
            raise ValueError("unit_id must be a non-empty string")
        self._id = unit_id
        self._route = route
        self._config = config or get_settings().unit
        self._operations: dict[str, Operation] = {}
        self._templates: dict[str, Template] = {}

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"Unit(id={self._id!r}, operations={self.list_operations()!r})"

    # =========================================================================
    # 操作の登録
    # =========================================================================

    def assign(self, name: str, handler: Handler) -> Unit:
        """操作を登録

        ハンドラーは同期・非同期どちらでもよい。呼び出し側からは常に非同期に見える。

        Args:
            name: 操作名
            handler: ペイロードを受け取り結果を返す関数

        Returns:
            self（メソッドチェーン用）
        """
        if not callable(handler):
            raise TypeError(f"Handler for {name!r} must be callable, got {type(handler).__name__}")

        async def operation(payload: Any) -> Any:
            result = handler(payload)
            if inspect.isawaitable(result):
                result = await result
            return result

        self._register(name, operation)
        return self

    def assign_constant(self, name: str, value: Any) -> Unit:
        """ペイロードを無視して常に同じ値を返す操作を登録"""

        async def operation(payload: Any) -> Any:
            return value

        self._register(name, operation)
        return self

    def alias(
        self,
        name: str,
        target_operation: str,
        context: Mapping[str, Any] | None = None,
    ) -> Unit:
        """固定コンテキスト付きで既存操作を呼ぶ別名（ロール）を登録

        ペイロードは context → 呼び出し側ペイロードの順にマージされ、
        衝突時は呼び出し側が勝つ。対象操作の存在確認は呼び出し時に行う。

        Args:
            name: 別名
            target_operation: 実際に実行する操作名
            context: マージする固定コンテキスト

        Returns:
            self（メソッドチェーン用）
        """
        fixed = dict(context or {})

        async def operation(payload: Any) -> Any:
            target = self._operations.get(target_operation)
            if target is None:
                raise UnknownOperationError(
                    unit_id=self._id,
                    operation_name=target_operation,
                    error=f"Alias {name!r} refers to unknown operation: {target_operation}",
                    payload=payload,
                )
            if payload is None:
                merged = dict(fixed)
            elif isinstance(payload, Mapping):
                merged = {**fixed, **payload}
            else:
                raise TypeError(
                    f"Alias {name!r} requires a mapping payload, got {type(payload).__name__}"
                )
            return await target(merged)

        self._register(name, operation)
        return self

    def then(self, name: str, template: Template) -> Unit:
        """操作に後続テンプレートを登録

        Envelope自体が follow_up を持たない場合、操作の結果をテンプレートに渡して
        次のEnvelopeを作り、follow_up と同じ経路で送る。

        Args:
            name: 操作名（登録前でもよい）
            template: 結果を受け取り次のEnvelopeまたは辞書を返す関数

        Returns:
            self（メソッドチェーン用）
        """
        if not callable(template):
            raise TypeError(
                f"Template for {name!r} must be callable, got {type(template).__name__}"
            )
        if name in self._templates:
            logger.warning(f"後続テンプレートを上書き: {self._id}:{name}")
        self._templates[name] = template
        return self

    def _register(self, name: str, operation: Operation) -> None:
        if not name:
            raise ValueError("Operation name must be a non-empty string")
        if name in self._operations:
            logger.warning(f"操作を上書き: {self._id}:{name}")
        self._operations[name] = operation

    # =========================================================================
    # イントロスペクション
    # =========================================================================

    def has(self, name: str) -> bool:
        """操作が登録されているか"""
        return name in self._operations

    def list_operations(self) -> list[str]:
        """登録順の操作名一覧"""
        return list(self._operations)

    # =========================================================================
    # 配送
    # =========================================================================

    async def deliver(
        self,
        message: Envelope | Mapping[str, Any],
        *,
        on_success: Callable[[], Any] | None = None,
    ) -> Any:
        """Envelopeを受け取り、操作を実行して結果を返す

        後続Envelopeがあれば次のホップへ進む。follow_up は結果をプレースホルダに
        置換して使い、follow_up がなければ操作の後続テンプレートに結果を渡して作る。
        別Unit宛てでルーティング関数があれば委譲し、それ以外は自分自身に再配送する。

        ハンドラーが送出した別UnitのEnvelopeErrorはこのホップの HandlerError で包む。
        後続ホップのエラーは包まずにそのまま伝播する。

        Args:
            message: Envelope またはワイヤ形式の辞書
            on_success: このホップのハンドラー成功直後、後続ホップ開始前に
                        同期的に呼ばれるコールバック

        Returns:
            チェーン末端の結果

        Raises:
            MalformedEnvelopeError: Envelopeが不正な場合
            UnknownOperationError: 操作が登録されていない場合
            HandlerError: ハンドラーが例外を送出した場合
        """
        try:
            envelope = Envelope.coerce(message)
            _, name = parse_target(
                envelope.target,
                self._config.target_separator,
                self._config.default_operation,
            )
        except MalformedEnvelopeError as exc:
            raise MalformedEnvelopeError(
                unit_id=self._id,
                operation_name=exc.operation_name,
                error=exc.error,
                payload=exc.payload,
            ) from exc

        operation = self._operations.get(name)
        if operation is None:
            raise UnknownOperationError(
                unit_id=self._id,
                operation_name=name,
                error=f"Unknown operation: {name}",
                payload=envelope.payload,
            )

        logger.debug(f"配送: {self._id}:{name} (envelope={envelope.envelope_id})")
        try:
            result = await operation(envelope.payload)
        except EnvelopeError as exc:
            if exc.unit_id == self._id:
                raise
            # ハンドラー内の入れ子sendで起きた失敗はこのホップの文脈で包む
            raise HandlerError(
                unit_id=self._id,
                operation_name=name,
                error=exc,
                payload=envelope.payload,
            ) from exc
        except Exception as exc:
            raise HandlerError(
                unit_id=self._id,
                operation_name=name,
                error=exc,
                payload=envelope.payload,
            ) from exc

        next_envelope = self._next_envelope(envelope, name, result)

        if on_success is not None:
            on_success()

        if next_envelope is None:
            return result

        next_unit_id, _ = parse_target(
            next_envelope.target,
            self._config.target_separator,
            self._config.default_operation,
        )
        if next_unit_id != self._id and self._route is not None:
            return await self._route(next_envelope, envelope.target)
        return await self.deliver(next_envelope)

    def _next_envelope(self, envelope: Envelope, name: str, result: Any) -> Envelope | None:
        """後続Envelopeを決定

        Envelopeの follow_up が優先され、なければ操作の後続テンプレートを使う。
        """
        if envelope.follow_up is not None:
            return substitute(envelope.follow_up, result, self._config.placeholder)

        template = self._templates.get(name)
        if template is None:
            return None
        try:
            produced = template(result)
        except Exception as exc:
            raise HandlerError(
                unit_id=self._id,
                operation_name=name,
                error=exc,
                payload=envelope.payload,
            ) from exc
        try:
            return Envelope.coerce(produced)
        except MalformedEnvelopeError as exc:
            raise MalformedEnvelopeError(
                unit_id=self._id,
                operation_name=name,
                error=exc.error,
                payload=exc.payload,
            ) from exc

    async def invoke(self, name: str, payload: Any = None) -> Any:
        """自身の操作を follow_up なしのEnvelopeで呼び出す"""
        target = f"{self._id}{self._config.target_separator}{name}"
        return await self.deliver(Envelope(target=target, payload=payload))
