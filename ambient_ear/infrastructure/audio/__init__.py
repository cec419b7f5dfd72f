#!/usr/bin/env python3
"""
Ambient Ear - Audio Infrastructure
オーディオ関連のインフラストラクチャ層
"""

# 音声ソース
from .sources import (
    AudioAccessError,
    AudioDevice,
    AudioSource,
    CaptureConstraints,
    FileAudioSource,
    MicrophoneAudioSource,
)

# 解析と共有マイク
from .analyser import SpectrumAnalyser
from .multiplexer import SharedMicrophone

# VADコンポーネント
from .vad_detector import VADDetector
from .vad_state_machine import SpeechTransition, VadStateMachine
from .speech_activity import (
    SpeechActivityStatus,
    SpeechActivityTracker,
    SpeechProbabilityModel,
    resample_linear,
)

__all__ = [
    # 音声ソース
    "AudioAccessError",
    "AudioDevice",
    "AudioSource",
    "CaptureConstraints",
    "FileAudioSource",
    "MicrophoneAudioSource",
    # 解析と共有マイク
    "SharedMicrophone",
    "SpectrumAnalyser",
    # VAD
    "SpeechActivityStatus",
    "SpeechActivityTracker",
    "SpeechProbabilityModel",
    "SpeechTransition",
    "VADDetector",
    "VadStateMachine",
    "resample_linear",
]
