#!/usr/bin/env python3
"""
Ambient Ear - CLI Main Entry Point
CLIアプリケーションのエントリーポイント
"""

import argparse
from pathlib import Path

from colorama import Fore, Style  # type: ignore[import-untyped]
from colorama import init as colorama_init

from ambient_ear.infrastructure.audio import MicrophoneAudioSource

from .controller import CLIController


def parse_args() -> argparse.Namespace:
    """CLI引数を解析する"""
    parser = argparse.ArgumentParser(
        prog="ambient-ear",
        description="Real-time music detection and conversational turn detection on a shared microphone",
    )
    parser.add_argument(
        "-l",
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit",
    )
    parser.add_argument(
        "-d",
        "--device",
        type=int,
        default=None,
        metavar="ID",
        help="Audio input device ID (use --list-devices to see available devices)",
    )
    parser.add_argument(
        "-f",
        "--file",
        type=str,
        default=None,
        metavar="PATH",
        help="Audio file path (mp3/wav) to analyze instead of microphone input",
    )
    parser.add_argument(
        "--no-turn-detection",
        action="store_true",
        help="Run music detection only (skip VAD and Whisper)",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        metavar="DIR",
        help="Directory holding config.toml / config.local.toml (default: repository root)",
    )
    parser.add_argument(
        "--show-analysis",
        action="store_true",
        help="Print the music analysis result of every frame",
    )
    return parser.parse_args()


def print_audio_devices() -> None:
    """利用可能なオーディオ入力デバイス一覧を表示する"""
    devices = MicrophoneAudioSource.list_devices()
    if not devices:
        print(f"{Fore.YELLOW}No audio input devices found.{Style.RESET_ALL}")
        return

    print(f"\n{Fore.CYAN}Input devices:{Style.RESET_ALL}\n")
    for device in devices:
        default_marker = (
            f" {Fore.GREEN}(default){Style.RESET_ALL}" if device.is_default else ""
        )
        print(
            f"  [{device.id}] {device.name} "
            f"({device.max_input_channels}ch, {device.default_sample_rate:.0f}Hz)"
            f"{default_marker}"
        )
    print()


def main() -> None:
    """エントリーポイント"""
    args = parse_args()
    colorama_init(autoreset=True)

    if args.list_devices:
        print_audio_devices()
        return

    controller = CLIController(
        device_id=args.device,
        file_path=args.file,
        turn_detection=not args.no_turn_detection,
        show_analysis=args.show_analysis,
        config_dir=args.config_dir,
    )
    controller.run()


if __name__ == "__main__":
    main()
