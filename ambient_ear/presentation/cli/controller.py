#!/usr/bin/env python3
"""
Ambient Ear - CLI Controller
CLIアプリケーションのコントローラー層：アプリケーションのライフサイクル管理
"""

import select
import sys
import time
import traceback
from collections.abc import Callable
from pathlib import Path

from ambient_ear.domain import MessageLevel, post_message
from ambient_ear.infrastructure.audio import (
    AudioSource,
    FileAudioSource,
    MicrophoneAudioSource,
)
from ambient_ear.infrastructure.config import load_settings
from ambient_ear.presentation.app import AmbientEarApp

from .view import CLIView


class CLIController:
    """
    CLIコントローラー

    責務:
    - AudioSourceの選択・生成
    - App/View初期化と配線
    - アプリケーションのライフサイクル管理（起動/終了）
    - 入力監視と終了シグナル処理
    """

    def __init__(
        self,
        device_id: int | None,
        file_path: str | None,
        turn_detection: bool = True,
        show_analysis: bool = False,
        config_dir: Path | None = None,
    ) -> None:
        """
        Args:
            device_id: オーディオデバイスID（Noneの場合は設定値またはデフォルト）
            file_path: 音声ファイルパス（Noneの場合はマイク入力）
            turn_detection: ターン検出を使うか
            show_analysis: フレームごとの解析結果を表示するか
            config_dir: 設定ファイルのディレクトリ（Noneの場合はリポジトリルート）
        """
        self.file_path = file_path
        self.turn_detection = turn_detection
        self.settings = load_settings(config_dir)
        self.device_id = (
            device_id if device_id is not None else self.settings.microphone.device_id
        )
        if show_analysis:
            self.settings.app.show_analysis = True

        self.app: AmbientEarApp | None = None
        self.view: CLIView | None = None

    def run(self) -> None:
        """
        アプリケーションを実行

        Raises:
            SystemExit: エラー発生時
        """
        # 1. CLIView作成（Signal受信準備）
        self.view = CLIView(settings=self.settings)

        # 2. AudioSource生成とバナー表示
        audio_source = self._create_audio_source()
        self.view.show_banner(
            source_label=self.file_path or f"microphone ({self.device_id or 'default'})",
            turn_detection=self.turn_detection,
        )

        # 3. AmbientEarApp作成と開始
        self.app = AmbientEarApp(
            audio_source=audio_source,
            settings=self.settings,
            enable_turn_detection=self.turn_detection,
        )
        app = self.app
        if not app.start():
            self._shutdown()
            sys.exit(1)

        # 4. ステータスバー更新開始
        self.view.start(app)

        post_message(
            self,
            "🎙️  Listening... (Ctrl+C to stop, Ctrl+D for fast exit)\n",
            MessageLevel.SUCCESS,
        )

        try:
            stop_condition = (lambda: app.is_finished) if app.is_file_mode else None
            if self._wait_for_exit_signal(stop_condition):
                post_message(
                    self, "\nFile processing completed.", MessageLevel.SUCCESS
                )
                self._shutdown()
                return

        except KeyboardInterrupt:
            post_message(self, "\nGoodbye!", MessageLevel.SUCCESS)
            self._shutdown()
            return

        except EOFError:
            post_message(self, "\nFast exit (Ctrl-D)", MessageLevel.WARNING)
            self._shutdown()
            return

        except Exception as e:
            post_message(self, f"\nError: {e}", MessageLevel.ERROR)
            traceback.print_exc()
            sys.exit(1)

    def _create_audio_source(self) -> AudioSource:
        """
        CLI引数に基づいてAudioSourceを生成

        Returns:
            AudioSource: ファイル入力またはマイク入力
        """
        if self.file_path:
            return FileAudioSource(
                file_path=self.file_path,
                realtime_simulation=self.settings.audio.file_realtime_simulation,
                shutdown_timeout_sec=self.settings.audio.playback_shutdown_timeout_sec,
            )
        return MicrophoneAudioSource(device_id=self.device_id)

    def _wait_for_exit_signal(
        self, stop_condition: Callable[[], bool] | None = None
    ) -> bool:
        """
        終了シグナルを待機

        Args:
            stop_condition: 終了条件を判定する関数。Trueを返すとループ終了。

        Returns:
            bool: stop_conditionがTrueで終了した場合True

        Raises:
            KeyboardInterrupt: Ctrl-C が押された場合
            EOFError: Ctrl-D が押された場合
        """
        while stop_condition is None or not stop_condition():
            # 標準入力の監視（Ctrl-D検出用）
            if sys.stdin.isatty():
                ready, _, _ = select.select(
                    [sys.stdin], [], [], self.settings.app.input_poll_interval_sec
                )
                if ready and not sys.stdin.read(1):
                    raise EOFError
            else:
                time.sleep(self.settings.app.input_poll_interval_sec)

        return True

    def _shutdown(self) -> None:
        """アプリケーションの終了処理"""
        if self.view:
            self.view.stop()
        if self.app:
            self.app.shutdown()
