#!/usr/bin/env python3
"""
Ambient Ear - Detection Consumers
検出器を共有マイクのコンシューマとして登録/解除するアダプタ
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

from ambient_ear.domain import (
    AnalysisFrame,
    AudioConsumer,
    MessageLevel,
    RawAudioFrame,
    TurnCompletedEvent,
    post_message,
    turn_completed,
)
from ambient_ear.infrastructure.audio import (
    SharedMicrophone,
    SpeechActivityTracker,
    SpeechTransition,
)

from .music_detector import MusicDetector
from .turn_detector import TurnDetector


class MusicDetectionConsumer:
    """
    音楽判別器のコンシューマ

    解析フレームだけを使う（生フレームは無視）。
    """

    def __init__(
        self,
        detector: MusicDetector,
        buffer_size: int = 4096,
        consumer_id: str = "music-detection",
    ) -> None:
        self.detector = detector
        self.buffer_size = buffer_size
        self.consumer_id = consumer_id
        self._microphone: SharedMicrophone | None = None

    def attach(self, microphone: SharedMicrophone) -> bool:
        """
        共有マイクへ登録する

        Returns:
            bool: 登録できた場合True
        """
        if self._microphone is not None:
            post_message(
                self, f"{self.consumer_id} is already attached", MessageLevel.WARNING
            )
            return False

        registered = microphone.register_consumer(
            AudioConsumer(
                id=self.consumer_id,
                name="Music Detection",
                buffer_size=self.buffer_size,
                on_raw_frame=self._on_raw_frame,
                on_analysis_frame=self._on_analysis_frame,
            )
        )
        if registered:
            self._microphone = microphone
        return registered

    def detach(self) -> None:
        """共有マイクから登録解除する"""
        if self._microphone is None:
            return
        self._microphone.unregister_consumer(self.consumer_id)
        self._microphone = None

    def _on_raw_frame(self, frame: RawAudioFrame) -> None:
        pass

    def _on_analysis_frame(self, frame: AnalysisFrame) -> None:
        self.detector.process_audio_analysis(frame)

    @property
    def is_attached(self) -> bool:
        return self._microphone is not None


class TurnDetectionConsumer:
    """
    ターン検出器のコンシューマ

    機能:
    - 生フレームごとにVADで発話状態を更新し、発話音声をターン検出器へ渡す
    - 発話開始でターンを開始し、共有マイクに録音中を宣言（バッファサイズ固定）
    - 無音中はターン完了判定をワーカースレッドで実行（同時に1件まで）
    - ターン完了で録音終了を宣言し、turn_completed を発行

    判定（文字起こしを含む）は音声コールバックスレッドをブロックしないよう
    単一ワーカーで実行する。録音終了に伴うストリーム再起動もワーカー側で起きる。
    """

    def __init__(
        self,
        detector: TurnDetector,
        speech_activity: SpeechActivityTracker,
        buffer_size: int = 1024,
        consumer_id: str = "turn-detection",
        music_detector: MusicDetector | None = None,
        shutdown_timeout_sec: float = 5.0,
    ) -> None:
        """
        Args:
            detector: ターン検出器
            speech_activity: 発話状態トラッカー
            buffer_size: 共有マイクに要求するバッファサイズ
            consumer_id: コンシューマID
            music_detector: 指定時、音楽再生中はターン外の発話を無視する
                （mute_idle_speech_on_music が有効な場合）
            shutdown_timeout_sec: detach時にワーカー完了を待つ時間（秒）
        """
        self.detector = detector
        self.speech_activity = speech_activity
        self.buffer_size = buffer_size
        self.consumer_id = consumer_id
        self.music_detector = music_detector
        self.shutdown_timeout_sec = shutdown_timeout_sec

        self._microphone: SharedMicrophone | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._pending: Future[None] | None = None
        self._turn_lock = threading.Lock()
        self._in_turn = False
        self._completing = False
        self._resume_turn = False

    def attach(self, microphone: SharedMicrophone) -> bool:
        """
        共有マイクへ登録し、判定ワーカーを起動する

        Returns:
            bool: 登録できた場合True
        """
        if self._microphone is not None:
            post_message(
                self, f"{self.consumer_id} is already attached", MessageLevel.WARNING
            )
            return False

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="TurnDetectionWorker"
        )
        # 登録直後からフレームが届くため、先に参照を設定する
        self._microphone = microphone
        registered = microphone.register_consumer(
            AudioConsumer(
                id=self.consumer_id,
                name="Turn Detection",
                buffer_size=self.buffer_size,
                on_raw_frame=self._on_raw_frame,
            )
        )
        if not registered:
            self._microphone = None
            self._executor.shutdown(wait=False)
            self._executor = None
        return registered

    def detach(self) -> None:
        """登録解除し、ワーカーを停止して状態をリセット"""
        microphone = self._microphone
        if microphone is None:
            return

        microphone.unregister_consumer(self.consumer_id)
        self._microphone = None

        pending = self._pending
        if pending is not None:
            wait([pending], timeout=self.shutdown_timeout_sec)
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._pending = None

        with self._turn_lock:
            self._in_turn = False
            self._completing = False
            self._resume_turn = False
        self.speech_activity.reset()
        self.detector.reset()

    # ========== フレーム処理（音声スレッド） ==========

    def _on_raw_frame(self, frame: RawAudioFrame) -> None:
        microphone = self._microphone
        if microphone is None:
            return
        sample_rate = microphone.get_sample_rate()
        if sample_rate is None:
            return

        self.detector.sample_rate = sample_rate
        transitions = self.speech_activity.process(frame.samples, sample_rate)
        is_speaking = self.speech_activity.is_speaking

        if SpeechTransition.SPEECH_STARTED in transitions and not self._music_muted():
            self._begin_turn(microphone)

        if not self._in_turn:
            return

        self.detector.process_audio(frame.samples, is_speaking)
        if not is_speaking:
            self._schedule_evaluation()

    def _music_muted(self) -> bool:
        """音楽再生中にターン外の発話を無視するかどうか"""
        music = self.music_detector
        if music is None or self._in_turn:
            return False
        return music.config.mute_idle_speech_on_music and music.is_music

    def _begin_turn(self, microphone: SharedMicrophone) -> None:
        with self._turn_lock:
            if self._completing:
                # 終了処理中の発話開始はワーカーが録音終了後に引き継ぐ
                self._resume_turn = True
                return
            if self._in_turn:
                return
            self._in_turn = True
        self.detector.reset()
        microphone.mark_recording_start(self.consumer_id)

    def _schedule_evaluation(self) -> None:
        """判定を1件だけワーカーへ投入（実行中なら投入しない）"""
        if self._pending is not None and not self._pending.done():
            return
        executor = self._executor
        if executor is None:
            return
        self._pending = executor.submit(self._evaluate)
        self._pending.add_done_callback(self._on_evaluation_done)

    # ========== 判定（ワーカースレッド） ==========

    def _evaluate(self) -> None:
        result = self.detector.detect_turn_completion(self.speech_activity.is_speaking)
        if result is None or not result.turn_complete:
            return

        turn_duration_ms = self.detector.get_metrics().turn_duration_ms
        with self._turn_lock:
            if not self._in_turn or self._completing:
                return
            self._completing = True

        # 終了処理中に届く音声は次のターンのバッファに残す
        self.detector.reset()
        microphone = self._microphone
        if microphone is not None:
            microphone.mark_recording_stop(self.consumer_id)

        with self._turn_lock:
            self._completing = False
            resume = self._resume_turn
            self._resume_turn = False
            self._in_turn = resume
        if resume and microphone is not None:
            microphone.mark_recording_start(self.consumer_id)

        turn_completed.send(
            self,
            event=TurnCompletedEvent(result=result, turn_duration_ms=turn_duration_ms),
        )

    def _on_evaluation_done(self, future: Future[None]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            post_message(
                self, f"Turn evaluation failed: {error!r}", MessageLevel.ERROR
            )

    # ========== 状態取得 ==========

    @property
    def is_attached(self) -> bool:
        return self._microphone is not None

    @property
    def in_turn(self) -> bool:
        """ターン（録音）中かどうか"""
        return self._in_turn
