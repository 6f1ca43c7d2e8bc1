"""AntForge 設定管理モジュール

Pydantic Settingsを使用した型安全な設定管理。
antforge.config.yaml と環境変数から設定を読み込む。
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class UnitConfig(BaseModel):
    """Unit設定"""

    default_operation: str = Field(
        default="default", min_length=1, description="操作名省略時に使うデフォルト操作"
    )
    placeholder: str = Field(
        default="{{result}}", min_length=1, description="前段の結果に置換されるプレースホルダ"
    )
    target_separator: str = Field(
        default=":", min_length=1, description="ターゲット文字列のUnit IDと操作名の区切り"
    )


class ColonyConfig(BaseModel):
    """Colony設定（ルーティングと匂いの学習）"""

    default_origin: str = Field(default="entry", min_length=1, description="外部からの送信元")
    default_increment: float = Field(default=1.0, gt=0.0, description="1回の通過で加算する重み")
    decay_rate: float = Field(default=0.1, ge=0.0, le=1.0, description="減衰率")
    prune_threshold: float = Field(
        default=0.01, gt=0.0, description="この値を下回ったエッジは削除"
    )
    rank_limit: int = Field(default=10, ge=1, description="ランキングのデフォルト件数")
    highway_threshold: float = Field(
        default=10.0, gt=0.0, description="ハイウェイとみなす重みの下限"
    )


class ActivityConfig(BaseModel):
    """アクティビティバス設定"""

    max_recent_events: int = Field(default=100, ge=1, description="保持する最近のイベント数")


class TrackerConfig(BaseModel):
    """ホップトラッカー設定"""

    max_hops: int = Field(
        default=1000, ge=1, description="保持するホップ記録の上限（古いものから破棄）"
    )


class AntForgeSettings(BaseSettings):
    """AntForge全体設定

    設定の優先順位:
    1. 環境変数
    2. antforge.config.yaml
    3. デフォルト値
    """

    model_config = SettingsConfigDict(
        env_prefix="ANTFORGE_",
        env_nested_delimiter="__",
    )

    unit: UnitConfig = Field(default_factory=UnitConfig)
    colony: ColonyConfig = Field(default_factory=ColonyConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)

    @classmethod
    def from_yaml(cls, config_path: Path | str | None = None) -> "AntForgeSettings":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス。Noneの場合はデフォルトパスを探索

        Returns:
            AntForgeSettings インスタンス
        """
        if config_path is None:
            search_paths = [
                Path.cwd() / "antforge.config.yaml",
                Path.cwd() / "antforge.config.yml",
                Path.home() / ".antforge" / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path and Path(config_path).exists():
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
            return cls.model_validate(yaml_config)

        return cls()


# グローバル設定インスタンス（遅延初期化）
_settings: AntForgeSettings | None = None


def get_settings() -> AntForgeSettings:
    """設定シングルトンを取得"""
    global _settings
    if _settings is None:
        _settings = AntForgeSettings.from_yaml()
    return _settings


def reload_settings(config_path: Path | str | None = None) -> AntForgeSettings:
    """設定を再読み込み"""
    global _settings
    _settings = AntForgeSettings.from_yaml(config_path)
    return _settings
