"""Colony - Unit間メッセージルーティングと経路学習

Unit（名前付き非同期操作の束）、Envelope（メッセージ）、
Colony（Unitのレジストリと匂いのグラフ）を提供する。
"""

from .colony import EDGE_SEPARATOR, Colony, RankedEdge, edge_id
from .envelope import Envelope, generate_envelope_id, parse_target, substitute
from .errors import (
    DuplicateUnitError,
    EnvelopeError,
    HandlerError,
    MalformedEnvelopeError,
    UnknownOperationError,
    UnknownUnitError,
)
from .tracker import HopRecord, HopStatus, HopTracker
from .unit import Unit

__all__ = [
    # Colony
    "Colony",
    "RankedEdge",
    "EDGE_SEPARATOR",
    "edge_id",
    # Unit
    "Unit",
    # Envelope
    "Envelope",
    "generate_envelope_id",
    "parse_target",
    "substitute",
    # Errors
    "EnvelopeError",
    "UnknownUnitError",
    "UnknownOperationError",
    "HandlerError",
    "MalformedEnvelopeError",
    "DuplicateUnitError",
    # Tracker
    "HopTracker",
    "HopRecord",
    "HopStatus",
]
