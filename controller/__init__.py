"""Session controller package: transcript, recognition lifecycle and chat orchestration."""

from .config import AppConfig, ConfigError, RecognitionConfig, SessionControllerConfig, load_config
from .recognition import (
    RecognitionAdapter,
    RecognitionEngine,
    RecognitionEnded,
    RecognitionError,
    RecognitionEvent,
    RecognitionFailure,
    RecognitionNoMicrophone,
    RecognitionNoSpeech,
    RecognitionOther,
    RecognitionPermissionDenied,
    RecognitionResult,
    RecognitionStarted,
    RecognitionState,
    RecognitionUnsupported,
    ScriptedRecognitionEngine,
    describe_recognition_error,
    recognition_error_for,
)
from .session_controller import CONNECTIVITY_FAILURE_MESSAGE, REPLY_PENDING_MESSAGE, SessionController
from .transcript import Message, Sender, SessionFlags, Transcript

__all__ = [
    "AppConfig",
    "ConfigError",
    "RecognitionConfig",
    "SessionControllerConfig",
    "load_config",
    "RecognitionAdapter",
    "RecognitionEngine",
    "RecognitionEnded",
    "RecognitionError",
    "RecognitionEvent",
    "RecognitionFailure",
    "RecognitionNoMicrophone",
    "RecognitionNoSpeech",
    "RecognitionOther",
    "RecognitionPermissionDenied",
    "RecognitionResult",
    "RecognitionStarted",
    "RecognitionState",
    "RecognitionUnsupported",
    "ScriptedRecognitionEngine",
    "describe_recognition_error",
    "recognition_error_for",
    "CONNECTIVITY_FAILURE_MESSAGE",
    "REPLY_PENDING_MESSAGE",
    "SessionController",
    "Message",
    "Sender",
    "SessionFlags",
    "Transcript",
]
