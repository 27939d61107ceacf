"""Data models for subtitle entries and subtitle sets."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

# 无效序号的输出形式，重新解析后仍为 None
INVALID_INDEX = "?"


@dataclass
class SubtitleEntry:
    """Represents a single subtitle block as it appeared in the uploaded file."""

    index: Optional[int]
    timestamp: str
    text: str
    translated_text: Optional[str] = None

    # 存储层分配的主键，不参与比较
    id: Optional[int] = field(default=None, compare=False)

    @property
    def display_text(self) -> str:
        """Translated text when available, the original text otherwise."""
        return self.translated_text if self.translated_text else self.text

    def to_srt(self) -> str:
        """Render the entry in the fixed SRT block layout (no trailing blank line)."""
        idx = INVALID_INDEX if self.index is None else str(self.index)
        return f"{idx}\n{self.timestamp}\n{self.text}\n"

    def copy(self, **changes) -> "SubtitleEntry":
        """Create a copy with optional field changes."""
        return SubtitleEntry(
            index=changes.get('index', self.index),
            timestamp=changes.get('timestamp', self.timestamp),
            text=changes.get('text', self.text),
            translated_text=changes.get('translated_text', self.translated_text),
            id=changes.get('id', self.id),
        )


@dataclass
class SubtitleSet:
    """A named collection of entries created by one upload."""

    id: int
    original_filename: str
    created_at: Optional[str] = None
    total: int = 0

    def to_dict(self) -> dict:
        return {
            "setId": self.id,
            "originalFilename": self.original_filename,
            "createdAt": self.created_at,
            "totalSubtitles": self.total,
        }
