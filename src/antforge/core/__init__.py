"""AntForge Core モジュール

共通基盤を提供:
- Config: 設定管理
- ActivityBus: Colony活動の配信
"""

from .activity_bus import ActivityBus, ActivityEvent, ActivityType
from .config import AntForgeSettings, get_settings, reload_settings

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "AntForgeSettings",
    # ActivityBus
    "ActivityBus",
    "ActivityEvent",
    "ActivityType",
]
