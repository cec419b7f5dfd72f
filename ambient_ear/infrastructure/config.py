#!/usr/bin/env python3
"""
Ambient Ear - Configuration Loader
設定の読み込み（TOML）とプレーンオブジェクト変換
"""

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ambient_ear.domain import Settings

# 後に並ぶファイルほど優先
CONFIG_FILENAMES = ("config.toml", "config.local.toml")

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2]


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """ネストした辞書をキー単位でマージ（overrideが優先、入力は変更しない）"""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_settings(config_dir: Path | None = None) -> Settings:
    """
    config_dir の TOML ファイルから設定を読み込む

    優先順位（後勝ち）:
    1. Settingsクラスのデフォルト値
    2. config.toml
    3. config.local.toml（個人用の上書き、バージョン管理外を想定）

    Args:
        config_dir: 設定ファイルのディレクトリ（Noneの場合はリポジトリルート）

    Raises:
        pydantic.ValidationError: 値が不正な場合
        tomllib.TOMLDecodeError: TOMLの構文エラー
    """
    directory = config_dir or DEFAULT_CONFIG_DIR

    data: dict[str, Any] = {}
    for filename in CONFIG_FILENAMES:
        data = _deep_merge(data, _read_toml(directory / filename))

    return settings_from_dict(data)


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    """
    設定をプレーンオブジェクトに変換する

    保存先（ファイル、KVストア等）に依存しない形式で、呼び出し側が永続化する。
    """
    return settings.model_dump(mode="json")


def settings_from_dict(
    data: Mapping[str, Any], base: Settings | None = None
) -> Settings:
    """
    プレーンオブジェクトから設定を復元する

    Args:
        data: 部分的な設定辞書（欠けたキーはbaseまたはデフォルト値）
        base: マージ元の設定（Noneの場合はデフォルト値）

    Raises:
        pydantic.ValidationError: 値が不正な場合
    """
    if base is None:
        return Settings(**data)
    return Settings(**_deep_merge(settings_to_dict(base), data))
