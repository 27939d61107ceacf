"""Batch translation of a stored subtitle set with progress reporting."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence, TypeVar

from .errors import SetNotFound, TranslationFailure
from .llm_client import Translator
from .models import SubtitleEntry
from .progress import ProgressChannel, ProgressEvent
from .store import SubtitleStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

T = TypeVar("T")


def make_batches(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive groups of ``size`` (the last may be smaller)."""
    if size < 1:
        raise ValueError(f"Batch size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class TranslationPipeline:
    """
    Translates every entry of a job and persists the results batch by batch.

    Within a batch all translate calls run concurrently; batches run strictly
    one after another, so at most ``batch_size`` provider calls are in flight
    per job. A failure aborts the job: earlier batches stay persisted, the
    failing batch and everything after it stay untranslated.
    """

    def __init__(
        self,
        store: SubtitleStore,
        translator: Translator,
        channel: ProgressChannel,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1, got {batch_size}")
        self.store = store
        self.translator = translator
        self.channel = channel
        self.batch_size = batch_size

    async def _translate_batch(
        self, batch: List[SubtitleEntry], target_language: str
    ) -> List[str]:
        tasks = [
            asyncio.ensure_future(self.translator.translate(e.text, target_language))
            for e in batch
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            # gather 不会取消其余任务
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def run(self, job_id: int, target_language: str) -> int:
        """
        Translate all entries of ``job_id`` into ``target_language``.

        Returns:
            Number of entries translated

        Raises:
            SetNotFound: the job id does not name a stored set
            TranslationFailure: a provider call failed; the job was aborted
        """
        if await asyncio.to_thread(self.store.get_set, job_id) is None:
            raise SetNotFound(job_id)

        entries = await asyncio.to_thread(self.store.load_entries, job_id)
        total = len(entries)
        batches = make_batches(entries, self.batch_size)

        logger.info(
            f"Job {job_id}: translating {total} entries to '{target_language}' "
            f"in {len(batches)} batch(es)"
        )
        self.channel.publish(ProgressEvent(job_id, 0, total))

        processed = 0
        for batch_no, batch in enumerate(batches, 1):
            try:
                translations = await self._translate_batch(batch, target_language)
                # 整批一次事务写入，失败时该批不留下部分结果
                await asyncio.to_thread(
                    self.store.save_translations,
                    [(entry.id, translated) for entry, translated in zip(batch, translations)],
                )
                for entry, translated in zip(batch, translations):
                    entry.translated_text = translated
            except Exception as e:
                detail = e.detail if isinstance(e, TranslationFailure) else str(e)
                logger.error(
                    f"Job {job_id}: batch {batch_no}/{len(batches)} failed: {detail}"
                )
                self.channel.publish(
                    ProgressEvent(job_id, processed, total, error=detail)
                )
                raise

            processed += len(batch)
            logger.debug(f"Job {job_id}: batch {batch_no}/{len(batches)} done ({processed}/{total})")
            self.channel.publish(ProgressEvent(job_id, processed, total))

        self.channel.publish(ProgressEvent(job_id, total, total, completed=True))
        logger.info(f"Job {job_id}: done, {total} entries translated")
        return total
