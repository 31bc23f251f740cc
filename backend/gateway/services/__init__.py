"""Business services: model resolution, error classification, and completions."""

from gateway.services.completion_service import (
    CompletionService,
    ErrorEvent,
    FinishEvent,
    ModelValidation,
    StreamEvent,
    TextDeltaEvent,
    build_generation_settings,
)
from gateway.services.error_classifier import (
    ERROR_RULES,
    ErrorClassification,
    ErrorKind,
    classify,
    to_completion_error,
)
from gateway.services.message_lifecycle import (
    LifecycleError,
    MessageLifecycle,
    PlaceholderState,
    persist_message_once,
)
from gateway.services.model_config import ModelConfigResolver

__all__ = [
    "CompletionService",
    "ErrorEvent",
    "FinishEvent",
    "ModelValidation",
    "StreamEvent",
    "TextDeltaEvent",
    "build_generation_settings",
    "ERROR_RULES",
    "ErrorClassification",
    "ErrorKind",
    "classify",
    "to_completion_error",
    "LifecycleError",
    "MessageLifecycle",
    "PlaceholderState",
    "persist_message_once",
    "ModelConfigResolver",
]
