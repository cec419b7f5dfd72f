#!/usr/bin/env python3
"""
Ambient Ear - VAD Module
Silero VAD（ONNX）による発話確率の推論
"""

from pathlib import Path

import numpy as np
import onnxruntime as ort  # type: ignore[import-untyped]
import requests

from ambient_ear.domain import MessageLevel, VADModelSettings, post_message
from ambient_ear.domain.constants import VAD_CHUNK_SIZE, VAD_SAMPLE_RATE


class VADDetector:
    """
    Silero VAD（ONNX）によるリアルタイム音声検知

    機能:
    - ステートフルRNN（状態テンソルを推論間で引き継ぐ）
    - 16kHz / 512サンプル（32ms）チャンク推論
    - モデル自動ダウンロード
    """

    def __init__(
        self,
        model_settings: VADModelSettings,
        auto_download: bool = True,
    ) -> None:
        """
        Args:
            model_settings: VADモデル設定（URLと保存先）
            auto_download: モデルが存在しない場合に自動ダウンロードするか
        """
        self.model_settings = model_settings

        post_message(self, "Initializing VAD...", MessageLevel.INFO)

        model_path = model_settings.model_path
        if auto_download and not model_path.exists():
            self._download_model(model_path, model_settings.url)

        self.session = ort.InferenceSession(
            str(model_path), providers=["CPUExecutionProvider"]
        )
        self._sr = np.array(VAD_SAMPLE_RATE, dtype=np.int64)
        self.reset_states()

        post_message(self, "VAD ready.", MessageLevel.SUCCESS)

    def _download_model(self, model_path: Path, url: str) -> None:
        """Silero VADモデルをダウンロード（ストリーミング書き込み）"""
        post_message(self, "Downloading Silero VAD model...", MessageLevel.INFO)
        model_path.parent.mkdir(parents=True, exist_ok=True)

        response = requests.get(url, stream=True, timeout=30)
        response.raise_for_status()

        with open(model_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)

        post_message(self, f"Model downloaded: {model_path}", MessageLevel.SUCCESS)

    def reset_states(self) -> None:
        """RNN状態をリセット（長い無音の後や発話区間の切り替え時）"""
        self.state = np.zeros((2, 1, 128), dtype=np.float32)

    def __call__(self, audio_chunk: np.ndarray) -> float:
        """
        1チャンクの発話確率を推論

        Args:
            audio_chunk: (512,) float32 16kHz音声

        Returns:
            float: 発話確率（0.0-1.0）
        """
        if len(audio_chunk) != VAD_CHUNK_SIZE:
            raise ValueError(
                f"VAD expects {VAD_CHUNK_SIZE} samples per chunk, got {len(audio_chunk)}"
            )

        ort_inputs = {
            "input": np.asarray(audio_chunk, dtype=np.float32).reshape(1, -1),
            "state": self.state,
            "sr": self._sr,
        }
        output, self.state = self.session.run(None, ort_inputs)
        return float(output.squeeze().item())
