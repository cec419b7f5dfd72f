#!/usr/bin/env python3
"""
Ambient Ear - Package Entry Point
python -m ambient_ear で実行
"""

from ambient_ear.presentation.cli import main

if __name__ == "__main__":
    main()
