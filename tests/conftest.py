"""AntForge テスト設定"""

import os

import pytest

from antforge.colony import Colony, HopTracker
from antforge.core import ActivityBus
from antforge.core.config import AntForgeSettings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """開発者環境の設定ファイル・環境変数に依存しないデフォルト設定"""
    for key in list(os.environ):
        if key.startswith("ANTFORGE_"):
            monkeypatch.delenv(key)
    settings = AntForgeSettings()
    monkeypatch.setattr("antforge.core.config._settings", settings)
    return settings


@pytest.fixture
def colony():
    """空のColony"""
    return Colony()


@pytest.fixture
def bus():
    """テスト用ActivityBus"""
    return ActivityBus()


@pytest.fixture
def tracker():
    """テスト用HopTracker"""
    return HopTracker()
