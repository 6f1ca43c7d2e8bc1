"""Colony エラー分類

ルーティング・配送の失敗を表す構造化例外。
全ての例外は unit_id / operation_name / payload / error を保持し、
to_dict() でワイヤ形式の安定したキー名の辞書に変換できる。
"""

from __future__ import annotations

from typing import Any


class EnvelopeError(Exception):
    """Envelope処理エラーの基底クラス

    下流の協調者（ログ、エラールーティング）がフィールド名で
    パターンマッチできるよう、コンテキストを属性として保持する。
    """

    def __init__(
        self,
        unit_id: str,
        operation_name: str,
        error: str | BaseException,
        payload: Any = None,
    ) -> None:
        self.unit_id = unit_id
        self.operation_name = operation_name
        self.error = error
        self.payload = payload
        super().__init__(f"[{unit_id}:{operation_name}] {error}")

    def to_dict(self) -> dict[str, Any]:
        """ワイヤ形式の辞書に変換

        キーは unitId / operationName / payload / error（payload はNoneなら省略）。
        """
        d: dict[str, Any] = {
            "unitId": self.unit_id,
            "operationName": self.operation_name,
            "error": str(self.error),
        }
        if self.payload is not None:
            d["payload"] = self.payload
        return d


class UnknownUnitError(EnvelopeError):
    """Colonyに存在しないUnitへの送信"""

    pass


class UnknownOperationError(EnvelopeError):
    """Unitに登録されていない操作への配送"""

    pass


class HandlerError(EnvelopeError):
    """操作ハンドラーが例外を送出した

    元の例外は error 属性と __cause__ の両方に保持される。
    """

    pass


class MalformedEnvelopeError(EnvelopeError):
    """不正な形式のEnvelope"""

    pass


class DuplicateUnitError(EnvelopeError):
    """既に登録済みのIDでのspawn"""

    pass
