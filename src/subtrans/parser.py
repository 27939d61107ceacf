"""SRT parsing, generation and upload validation utilities."""

from __future__ import annotations

import re
import logging
from pathlib import Path
from typing import List, Sequence, Optional

from .errors import MalformedEntryError
from .models import SubtitleEntry

logger = logging.getLogger(__name__)

# 空行分隔：换行后跟一个或多个真正的空行，只含空格的行属于正文
_BLOCK_SEPARATOR = re.compile(r"\n{2,}")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

SUPPORTED_EXTENSIONS = {".srt"}


def parse_index(line: str) -> Optional[int]:
    """
    Parse the leading integer of an index line.

    Returns None when the line does not start with a number.
    """
    match = _LEADING_INT.match(line)
    if not match:
        return None
    return int(match.group(1))


def parse_srt(content: str, strict: bool = False) -> List[SubtitleEntry]:
    """
    Parse SRT file content into a list of SubtitleEntry objects.

    Blocks with fewer than three lines are dropped and a non-numeric index
    becomes ``None``, unless ``strict`` is set, in which case both raise
    MalformedEntryError.

    Args:
        content: Raw SRT file content as string
        strict: Raise instead of silently skipping malformed blocks

    Returns:
        Entries in block order (not sorted by index)
    """
    if not content or not content.strip():
        return []

    content = content.replace('\r\n', '\n').replace('\r', '\n')
    blocks = _BLOCK_SEPARATOR.split(content.strip())

    entries: List[SubtitleEntry] = []

    for block_number, block in enumerate(blocks, 1):
        lines = block.split('\n')
        if len(lines) < 3:
            if strict:
                raise MalformedEntryError(
                    f"Block {block_number} has {len(lines)} line(s), expected at least 3",
                    block_number,
                    block,
                )
            logger.debug(f"Skipping block {block_number}: only {len(lines)} line(s)")
            continue

        index = parse_index(lines[0])
        if index is None and strict:
            raise MalformedEntryError(
                f"Block {block_number} has a non-numeric index: {lines[0]!r}",
                block_number,
                block,
            )

        entries.append(SubtitleEntry(
            index=index,
            timestamp=lines[1],
            text='\n'.join(lines[2:]),
        ))

    if not entries:
        logger.warning("No valid SRT entries found in content")

    return entries


def generate_srt(entries: Sequence[SubtitleEntry]) -> str:
    """
    Render entries back to SRT text, one blank line between blocks.

    The caller is responsible for ordering; nothing is re-validated.
    """
    return '\n'.join(e.to_srt() for e in entries)


def decode_upload(raw: bytes) -> str:
    """Decode uploaded bytes as UTF-8 (BOM stripped), falling back to latin-1."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Upload is not valid UTF-8, decoding as latin-1")
        return raw.decode("latin-1")


def validate_upload(filename: str, size: int, max_bytes: int) -> Optional[str]:
    """
    Validate an uploaded subtitle file before parsing.

    Args:
        filename: Client-supplied file name (only the extension is checked)
        size: Payload size in bytes
        max_bytes: Upper size limit

    Returns:
        Error message if invalid, None if valid
    """
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        return f"Invalid file extension: {suffix or '(none)'} (expected .srt)"

    if size == 0:
        return "File is empty"
    if size > max_bytes:
        return f"File too large: {size / 1024 / 1024:.1f}MB (max {max_bytes / 1024 / 1024:.0f}MB)"

    return None


def save_srt(entries: Sequence[SubtitleEntry], path: Path) -> None:
    """
    Save entries to an SRT file.

    Args:
        entries: Sequence of SubtitleEntry objects to save
        path: Output file path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_srt(entries), encoding="utf-8")
    logger.info(f"Saved {len(entries)} entries to {path}")
