"""
FastAPI surface: upload, translate, progress stream and download.

Authentication is expected in front of this app (reverse proxy or
middleware); the routes assume the caller is already authorized.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .config import AppConfig, DEFAULT_OUTPUT_FILENAME, PREVIEW_SIZE
from .errors import SetNotFound, TranslationFailure
from .llm_client import Translator, TranslationGateway, create_client
from .parser import decode_upload, generate_srt, parse_srt, validate_upload
from .pipeline import TranslationPipeline
from .progress import ProgressChannel, Subscription
from .store import SubtitleStore

logger = logging.getLogger(__name__)

_READ_CHUNK = 1024 * 1024


def _entry_payload(entry) -> dict:
    return {
        "index": entry.index,
        "timestamp": entry.timestamp,
        "text": entry.text,
        "translatedText": entry.translated_text,
    }


def create_app(
    config: Optional[AppConfig] = None,
    translator: Optional[Translator] = None,
    store: Optional[SubtitleStore] = None,
) -> FastAPI:
    """
    创建并配置 FastAPI 应用。

    - 整个进程只持有一个 ProgressChannel 和一个 SubtitleStore（挂在 app.state 上）；
    - 未传入 translator 且配置了 API key 时，使用 OpenAI 兼容的 TranslationGateway。
    """
    config = config or AppConfig()
    owns_store = store is None
    if store is None:
        store = SubtitleStore(config.db_path)
    if translator is None and config.api_key:
        client = create_client(config.api_key, config.base_url, config.request_timeout)
        translator = TranslationGateway(client, config.model_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_store:
            store.close()

    app = FastAPI(
        title="subtrans",
        description="Upload SRT subtitles, translate them in batches, download the result.",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.channel = ProgressChannel()
    app.state.translator = translator

    @app.get("/health")
    async def health() -> JSONResponse:
        try:
            await asyncio.to_thread(store.ping)
        except sqlite3.Error as exc:
            logger.error(f"Health check failed: {exc}")
            return JSONResponse(
                {"status": "error", "database": "unavailable", "error": str(exc)},
                status_code=500,
            )
        return JSONResponse({"status": "ok", "database": "connected"})

    @app.get("/sets")
    async def list_sets(limit: int = 20) -> JSONResponse:
        sets = await asyncio.to_thread(store.list_sets, limit)
        return JSONResponse([s.to_dict() for s in sets])

    @app.post("/upload")
    async def upload(srt: UploadFile = File(...)) -> JSONResponse:
        """
        解析上传的 SRT 文件并存储为一个新的字幕集。

        返回字幕集 id、条目数量以及前几条预览。
        """
        if not srt.filename:
            raise HTTPException(status_code=400, detail="No file uploaded.")

        # 分块读取，超过上限立即拒绝
        chunks: list[bytes] = []
        size = 0
        while True:
            chunk = await srt.read(_READ_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > config.max_upload_bytes:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large (max {config.max_upload_mb} MB).",
                )
            chunks.append(chunk)

        error = validate_upload(srt.filename, size, config.max_upload_bytes)
        if error:
            raise HTTPException(status_code=400, detail=error)

        entries = parse_srt(decode_upload(b"".join(chunks)))
        if not entries:
            raise HTTPException(status_code=400, detail="No subtitle entries found in file.")

        subtitle_set = await asyncio.to_thread(store.create_set, srt.filename, entries)
        preview = await asyncio.to_thread(
            store.load_entries, subtitle_set.id, limit=PREVIEW_SIZE
        )

        return JSONResponse(
            {
                "setId": subtitle_set.id,
                "totalSubtitles": len(entries),
                "preview": [_entry_payload(e) for e in preview],
            }
        )

    @app.get("/translation-progress/{set_id}")
    async def translation_progress(set_id: int) -> StreamingResponse:
        """
        Server-sent events for one job, one progress event per message.

        The stream ends after the job's terminal event; the subscription is
        removed then or when the client goes away, whichever comes first.
        """
        subscription: Subscription = app.state.channel.subscribe(set_id)

        async def event_stream() -> AsyncIterator[str]:
            try:
                async for event in subscription.events():
                    yield event.to_sse()
            finally:
                subscription.close()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/translate/{set_id}")
    async def translate(set_id: int, target: Optional[str] = None) -> JSONResponse:
        """Run the batch pipeline for a set and wait for it to finish."""
        if app.state.translator is None:
            raise HTTPException(
                status_code=503, detail="Translation provider is not configured."
            )

        pipeline = TranslationPipeline(
            store,
            app.state.translator,
            app.state.channel,
            batch_size=config.batch_size,
        )
        try:
            translated = await pipeline.run(set_id, target or config.target_language)
        except SetNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except TranslationFailure as exc:
            return JSONResponse(
                {"error": "Failed to translate subtitles", "detail": exc.detail},
                status_code=502,
            )

        return JSONResponse({"success": True, "translated": translated})

    @app.get("/download/{set_id}")
    async def download(set_id: int) -> Response:
        if await asyncio.to_thread(store.get_set, set_id) is None:
            raise HTTPException(status_code=404, detail=f"Subtitle set not found: {set_id}")

        entries = await asyncio.to_thread(store.load_entries, set_id)
        content = generate_srt([e.copy(text=e.display_text) for e in entries])
        return Response(
            content,
            media_type="text/plain; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{DEFAULT_OUTPUT_FILENAME}"'
            },
        )

    return app


def main(config: Optional[AppConfig] = None) -> None:
    """
    本地启动 Web 服务的入口。

    监听地址与端口来自 AppConfig（SUBTRANS_HOST / SUBTRANS_PORT）。
    """
    config = config or AppConfig()
    uvicorn.run(create_app(config), host=config.host, port=config.port)
