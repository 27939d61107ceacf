"""
subtrans - Batch subtitle translation service.

Features:
- Lossless SRT parsing and generation
- Line-by-line translation through an OpenAI-compatible provider
- Fixed-size concurrent batches with per-batch persistence
- Live progress over server-sent events
- SQLite-backed upload/download web service and a CLI
"""

__version__ = "0.1.0"

from .models import SubtitleEntry, SubtitleSet
from .errors import (
    SubtransError,
    MalformedEntryError,
    TranslationFailure,
    GatewayUnavailable,
    SetNotFound,
)
from .parser import parse_srt, generate_srt, save_srt, validate_upload, decode_upload
from .llm_client import TranslationGateway, Translator, create_client
from .progress import ProgressEvent, ProgressChannel, Subscription
from .store import SubtitleStore
from .pipeline import TranslationPipeline, make_batches
from .config import AppConfig

__all__ = [
    # Models
    "SubtitleEntry",
    "SubtitleSet",
    "ProgressEvent",
    "AppConfig",
    # Errors
    "SubtransError",
    "MalformedEntryError",
    "TranslationFailure",
    "GatewayUnavailable",
    "SetNotFound",
    # Codec
    "parse_srt",
    "generate_srt",
    "save_srt",
    "validate_upload",
    "decode_upload",
    # Translation
    "TranslationGateway",
    "Translator",
    "create_client",
    "TranslationPipeline",
    "make_batches",
    # Progress / storage
    "ProgressChannel",
    "Subscription",
    "SubtitleStore",
]
