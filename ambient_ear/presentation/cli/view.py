#!/usr/bin/env python3
"""
Ambient Ear - CLI View
CLIのView層：Signal購読とコンソール表示の統合管理
"""

import os
import re
import sys
import threading
import time

import wcwidth  # type: ignore[import-untyped]
from colorama import Fore, Style  # type: ignore[import-untyped]

from ambient_ear import __version__
from ambient_ear.domain import (
    MessageLevel,
    MessagePostedEvent,
    MusicAnalyzedEvent,
    MusicStartedEvent,
    MusicStoppedEvent,
    Settings,
    TurnCompletedEvent,
    message_posted,
    music_analyzed,
    music_started,
    music_stopped,
    turn_completed,
)
from ambient_ear.presentation.app import AmbientEarApp


class CLIView:
    """
    CLI View層

    責務:
    - Signalサブスクリプションとイベント駆動表示
    - コンソール表示のフォーマッティング
    - ステータスバーのリアルタイム更新
    - スレッドセーフな表示管理
    """

    # ANSIエスケープコード削除用パターン（コンパイル済み）
    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    def __init__(self, settings: Settings) -> None:
        """
        CLIViewの初期化とSignalサブスクリプション設定

        Args:
            settings: アプリケーション設定
        """
        self.settings = settings
        self.lock = threading.Lock()
        self.session_start_time = time.time()

        self._running = False
        self._update_thread: threading.Thread | None = None
        self._app: AmbientEarApp | None = None

        message_posted.connect(self._on_message_posted)
        music_started.connect(self._on_music_started)
        music_stopped.connect(self._on_music_stopped)
        turn_completed.connect(self._on_turn_completed)
        if settings.app.show_analysis:
            music_analyzed.connect(self._on_music_analyzed)

    # ========== Signalハンドラ ==========

    def _on_message_posted(self, _sender: object, event: MessagePostedEvent) -> None:
        """ステータスメッセージ表示ハンドラ"""
        self._show_message(event)

    def _on_music_started(self, _sender: object, event: MusicStartedEvent) -> None:
        self._print_line(
            f"{Fore.MAGENTA}♪ Music started{Style.RESET_ALL} "
            f"(confidence: {event.confidence:.2f}, t={event.timestamp_ms / 1000:.1f}s)"
        )

    def _on_music_stopped(self, _sender: object, event: MusicStoppedEvent) -> None:
        self._print_line(
            f"{Fore.BLUE}♪ Music stopped{Style.RESET_ALL} "
            f"(confidence: {event.confidence:.2f}, t={event.timestamp_ms / 1000:.1f}s)"
        )

    def _on_music_analyzed(self, _sender: object, event: MusicAnalyzedEvent) -> None:
        result = event.result
        self._print_line(
            f"{Fore.WHITE}[{result.timestamp_ms / 1000:7.2f}s] "
            f"music={result.is_music!s:<5} conf={result.confidence:.2f} "
            f"complexity={result.spectral_complexity:.2f} "
            f"energy={result.energy_level:.3f} bpm={result.bpm:.0f}{Style.RESET_ALL}"
        )

    def _on_turn_completed(self, _sender: object, event: TurnCompletedEvent) -> None:
        """ターン完了表示ハンドラ"""
        result = event.result
        timestamp = time.strftime("%H:%M:%S")
        transcript = f" {result.transcript}" if result.transcript else ""
        detail = (
            f"{Fore.MAGENTA}(reason: {result.reason.value}, "
            f"confidence: {result.confidence:.2f}, "
            f"turn: {event.turn_duration_ms / 1000:.1f}s){Style.RESET_ALL}"
        )
        self._print_line(
            f"{Fore.GREEN}[{timestamp}] Turn complete{Style.RESET_ALL}{transcript} {detail}"
        )

    # ========== ライフサイクル制御 ==========

    def start(self, app: AmbientEarApp) -> None:
        """
        ステータスバー更新を開始

        Args:
            app: 状態取得元のアプリケーション
        """
        self._app = app
        if self._running:
            return

        self._running = True
        self._update_thread = threading.Thread(
            target=self._status_update_loop,
            daemon=True,
            name="StatusUpdateThread",
        )
        self._update_thread.start()

    def stop(self) -> None:
        """ステータスバー更新を停止して購読を解除"""
        self._running = False
        if self._update_thread and self._update_thread.is_alive():
            self._update_thread.join(
                timeout=self.settings.app.status_update_shutdown_timeout_sec
            )

        message_posted.disconnect(self._on_message_posted)
        music_started.disconnect(self._on_music_started)
        music_stopped.disconnect(self._on_music_stopped)
        turn_completed.disconnect(self._on_turn_completed)
        music_analyzed.disconnect(self._on_music_analyzed)

        with self.lock:
            sys.stdout.write("\r\033[K\n")
            sys.stdout.flush()

    # ========== ステータス更新ループ ==========

    def _status_update_loop(self) -> None:
        """ステータス更新ループ（別スレッドで実行）"""
        while self._running:
            if self._app is not None:
                self._update_status_bar(self._app)
            time.sleep(self.settings.app.status_update_interval_sec)

    # ========== 表示メソッド ==========

    def _build_status_sections(self, app: AmbientEarApp) -> tuple[str, str]:
        """ステータスバーの左右セクションを構築"""
        parts: list[str] = []

        speech = app.speech_activity
        if speech is not None:
            status = speech.get_status()
            bar_width = 20
            filled = int(status.probability * bar_width)
            bar = "|" * filled + "." * (bar_width - filled)
            color = Fore.GREEN if status.is_speaking else Fore.CYAN
            parts.append(f"{color}VAD:[{bar}] {status.probability:.2f}{Style.RESET_ALL}")

        if app.turn_consumer is not None and app.turn_consumer.in_turn:
            parts.append(f"{Fore.RED}● TURN{Style.RESET_ALL}")
        if app.turn_detector_busy:
            parts.append(f"{Fore.YELLOW}⏳ Analyzing{Style.RESET_ALL}")

        elapsed = time.time() - self.session_start_time
        buffer_size = app.microphone.buffer_size
        right = (
            f"{Fore.CYAN}Session: {int(elapsed // 60)}m{int(elapsed % 60):02d}s"
            f"{Style.RESET_ALL} | {Fore.YELLOW}Buffer: {buffer_size or '-'}{Style.RESET_ALL}"
        )
        return " | ".join(parts), right

    def _update_status_bar(self, app: AmbientEarApp) -> None:
        """ステータスバーを更新"""
        # ロックが取得できない場合はスキップ（行表示中）
        if not self.lock.acquire(blocking=False):
            return

        try:
            try:
                terminal_width = os.get_terminal_size().columns
            except OSError:
                terminal_width = 80

            left, right = self._build_status_sections(app)
            overflow = (
                self._get_display_width(left)
                + self._get_display_width(right)
                - terminal_width
            )
            if overflow > 0:
                right = ""
            padding = " " * max(
                0,
                terminal_width
                - self._get_display_width(left)
                - self._get_display_width(right),
            )
            sys.stdout.write(f"\r\033[K{left}{padding}{right}")
            sys.stdout.flush()
        finally:
            self.lock.release()

    def _print_line(self, text: str) -> None:
        """ステータスバーを消して1行表示"""
        with self.lock:
            sys.stdout.write("\r\033[K")
            sys.stdout.write(f"{text}\n")
            sys.stdout.flush()

    def _show_message(self, event: MessagePostedEvent) -> None:
        """メッセージをレベルに応じた色で表示"""
        color_map = {
            MessageLevel.INFO: Fore.CYAN,
            MessageLevel.SUCCESS: Fore.GREEN,
            MessageLevel.WARNING: Fore.YELLOW,
            MessageLevel.ERROR: Fore.RED,
        }
        color = color_map.get(event.level, Fore.WHITE)
        self._print_line(f"{color}{event.message}{Style.RESET_ALL}")

    def show_banner(self, source_label: str, turn_detection: bool) -> None:
        """
        起動バナーを表示

        Args:
            source_label: 入力ソースの表示名
            turn_detection: ターン検出を使うか
        """
        version_display = (
            __version__.split(".dev")[0] if ".dev" in __version__ else __version__
        )

        music = self.settings.music
        turn = self.settings.turn_detection
        analyser = self.settings.analyser
        turn_info = (
            f"silence {turn.silence_threshold_ms}ms, "
            f"content analysis: {'on' if turn.use_content_analysis else 'off'}"
            if turn_detection
            else "Disabled"
        )

        banner = f"""
{Fore.CYAN}╔══════════════════════════════════════════╗
║       Ambient Ear v{version_display:<20}  ║
║  Music & Turn Detection                  ║
╚══════════════════════════════════════════╝{Style.RESET_ALL}

{Fore.YELLOW}Config:{Style.RESET_ALL}
  - Input: {source_label}
  - Analyser: FFT {analyser.fft_size} (smoothing {analyser.smoothing_time_constant})
  - Music: sensitivity {music.sensitivity} (stop < {music.sensitivity * music.stop_ratio:.2f})
  - Beat detection: {'on' if music.beat_detection_enabled else 'off'}
  - Turn detection: {turn_info}

"""
        sys.stdout.write(banner)
        sys.stdout.flush()

    # ========== フォーマッティングメソッド ==========

    def _get_display_width(self, text: str) -> int:
        """ANSIエスケープコードを除いた実際の表示幅を取得"""
        plain_text = self._ANSI_ESCAPE_PATTERN.sub("", text)
        return max(0, int(wcwidth.wcswidth(plain_text)))
