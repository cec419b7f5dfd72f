#!/usr/bin/env python3
"""
Ambient Ear - Infrastructure Layer
インフラストラクチャ層: 音声I/O、解析、外部サービス、設定読み込み
"""

from .config import load_settings, settings_from_dict, settings_to_dict

__all__ = [
    "load_settings",
    "settings_from_dict",
    "settings_to_dict",
]
