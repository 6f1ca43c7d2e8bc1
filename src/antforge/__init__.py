"""AntForge - インプロセスのアクター型メッセージルーティング基盤

Unitが名前付き非同期操作を公開し、ColonyがEnvelopeをルーティングしながら
よく使われる経路（ハイウェイ）を学習する。
"""

from .colony import Colony, Envelope, Unit
from .core import ActivityBus, get_settings

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ActivityBus",
    "Colony",
    "Envelope",
    "Unit",
    "get_settings",
]
