#!/usr/bin/env python3
"""
Ambient Ear - ML Infrastructure
機械学習関連のインフラストラクチャ層（Whisper文字起こし）
"""

from .transcriber import ModelState, WhisperSpeechToText

__all__ = [
    "ModelState",
    "WhisperSpeechToText",
]
