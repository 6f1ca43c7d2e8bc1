"""Envelope - Unit間メッセージ

ターゲット・ペイロード・後続Envelope（follow_up）を運ぶイミュータブルなメッセージ。
チェーン実行時はプレースホルダ置換で新しいEnvelopeを生成し、元のテンプレートは変更しない。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from ulid import ULID

from .errors import MalformedEnvelopeError

DEFAULT_PLACEHOLDER = "{{result}}"
DEFAULT_OPERATION = "default"
TARGET_SEPARATOR = ":"


def generate_envelope_id() -> str:
    """Envelope IDを生成 (ULID形式)"""
    return str(ULID())


class Envelope(BaseModel):
    """Unit間を流れるメッセージ

    target は "<unit_id>:<operation_name>" 形式。操作名を省略するとデフォルト操作。
    ワイヤ形式の "followUp" / "id" キーもそのまま受け付ける。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target: str = Field(..., min_length=1, description="宛先 (unit_id:operation_name)")
    payload: Any = Field(default=None, description="操作に渡す値")
    follow_up: Envelope | None = Field(
        default=None, alias="followUp", description="この結果を受けて次に送るEnvelope"
    )
    envelope_id: str = Field(default_factory=generate_envelope_id, alias="id")

    @classmethod
    def coerce(cls, obj: Envelope | Mapping[str, Any]) -> Envelope:
        """Envelope またはワイヤ形式の辞書をEnvelopeに変換

        Raises:
            MalformedEnvelopeError: 変換できない場合
        """
        if isinstance(obj, Envelope):
            return obj
        if not isinstance(obj, Mapping):
            raise MalformedEnvelopeError(
                unit_id="",
                operation_name="",
                error=f"Envelope must be a mapping, got {type(obj).__name__}",
                payload=obj,
            )
        try:
            return cls.model_validate(dict(obj))
        except ValidationError as exc:
            raise MalformedEnvelopeError(
                unit_id="",
                operation_name="",
                error=f"Invalid envelope: {exc.errors(include_url=False)}",
                payload=obj.get("payload"),
            ) from exc

    def to_dict(self) -> dict[str, Any]:
        """ワイヤ形式の辞書に変換"""
        d: dict[str, Any] = {"id": self.envelope_id, "target": self.target}
        if self.payload is not None:
            d["payload"] = self.payload
        if self.follow_up is not None:
            d["followUp"] = self.follow_up.to_dict()
        return d


Envelope.model_rebuild()


def parse_target(
    target: str,
    separator: str = TARGET_SEPARATOR,
    default_operation: str = DEFAULT_OPERATION,
) -> tuple[str, str]:
    """ターゲット文字列を (unit_id, operation_name) に分割

    "u" と "u:" はどちらもデフォルト操作を選ぶ。

    Raises:
        MalformedEnvelopeError: Unit IDが空の場合
    """
    unit_id, _, operation_name = target.partition(separator)
    if not unit_id:
        raise MalformedEnvelopeError(
            unit_id="",
            operation_name=operation_name,
            error=f"Target {target!r} has no unit id",
        )
    return unit_id, operation_name or default_operation


def substitute(
    envelope: Envelope,
    result: Any,
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> Envelope:
    """ペイロード中のプレースホルダを結果で置換した新しいEnvelopeを返す

    プレースホルダと完全一致する値のみ置換する。dict / list / tuple は
    再帰的に辿り、各階層で同じ規則を適用する。後続の follow_up はそのまま引き継ぐ。
    """
    return Envelope(
        target=envelope.target,
        payload=_fill(envelope.payload, result, placeholder),
        follow_up=envelope.follow_up,
    )


def _fill(value: Any, result: Any, placeholder: str) -> Any:
    if isinstance(value, str):
        return result if value == placeholder else value
    if isinstance(value, Mapping):
        return {k: _fill(v, result, placeholder) for k, v in value.items()}
    if isinstance(value, list):
        return [_fill(v, result, placeholder) for v in value]
    if isinstance(value, tuple):
        return tuple(_fill(v, result, placeholder) for v in value)
    return value
