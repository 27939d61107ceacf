"""Shared fixtures: an in-memory store and a scripted translator."""

import asyncio

import pytest

from subtrans.errors import TranslationFailure
from subtrans.models import SubtitleEntry
from subtrans.store import SubtitleStore


class FakeTranslator:
    """Prefixes text with the target language; fails on texts listed in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def translate(self, text, target_language):
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # 让出控制权，使同批次的调用交错执行
            await asyncio.sleep(0)
            if text in self.fail_on:
                raise TranslationFailure(f"cannot translate {text!r}", "bad_request")
            return f"[{target_language}] {text}"
        finally:
            self.in_flight -= 1


def make_entries(count, start=1):
    return [
        SubtitleEntry(i, f"00:00:{i:02d},000 --> 00:00:{i:02d},500", f"Line {i}")
        for i in range(start, start + count)
    ]


@pytest.fixture
def store():
    s = SubtitleStore()
    yield s
    s.close()


@pytest.fixture
def translator():
    return FakeTranslator()
