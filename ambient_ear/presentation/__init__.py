#!/usr/bin/env python3
"""
Ambient Ear - Presentation Layer
プレゼンテーション層：UI、アプリケーションロジック
"""

# コアアプリケーション
from .app import AmbientEarApp

__all__ = [
    # コアアプリケーション
    "AmbientEarApp",
]
