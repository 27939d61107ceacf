"""Translation gateway backed by an OpenAI-compatible chat API."""

from __future__ import annotations

import logging
from typing import Protocol
from enum import Enum

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    RateLimitError,
    AuthenticationError,
    BadRequestError,
    APIStatusError,
)

from .errors import GatewayUnavailable, TranslationFailure
from .text_utils import clean_translated_text, count_lines, truncate_text

logger = logging.getLogger(__name__)


class APIErrorType(Enum):
    """API 错误类型分类。"""
    RATE_LIMIT = "rate_limit"      # 429
    CONNECTION = "connection"       # 网络问题
    AUTH = "auth"                   # 401
    BAD_REQUEST = "bad_request"     # 400
    SERVER = "server"               # 500+
    MALFORMED = "malformed"         # 响应为空或无法使用
    UNKNOWN = "unknown"


def classify_error(error: Exception) -> tuple[APIErrorType, bool]:
    """
    分类 API 错误并判断是否为暂时性故障。

    Returns:
        (错误类型, 是否暂时性)
    """
    if isinstance(error, RateLimitError):
        return APIErrorType.RATE_LIMIT, True
    elif isinstance(error, APIConnectionError):
        return APIErrorType.CONNECTION, True
    elif isinstance(error, AuthenticationError):
        return APIErrorType.AUTH, False
    elif isinstance(error, BadRequestError):
        return APIErrorType.BAD_REQUEST, False
    elif isinstance(error, APIStatusError):
        if getattr(error, 'status_code', 0) >= 500:
            return APIErrorType.SERVER, True
        return APIErrorType.UNKNOWN, False
    else:
        return APIErrorType.UNKNOWN, False


class Translator(Protocol):
    """Anything that can translate one string into a target language."""

    async def translate(self, text: str, target_language: str) -> str:
        ...


SYSTEM_PROMPT = (
    "You are a professional subtitle translator. "
    "Detect the language of the user's text and translate it into the language "
    "with code '{target}'. Keep the same number of lines. "
    "Output only the translation, no explanation."
)


class TranslationGateway:
    """
    Sends one subtitle text to the provider and returns its translation.

    Every call is a single round-trip: the SDK's own retries are disabled and
    nothing is retried here. Callers decide what to do with a failure.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.3,
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature

    async def translate(self, text: str, target_language: str) -> str:
        """
        Translate ``text`` into ``target_language`` (source auto-detected).

        Raises:
            GatewayUnavailable: network trouble, rate limit or provider 5xx
            TranslationFailure: any other provider error or an empty response
        """
        if not text.strip():
            return text

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(target=target_language)},
            {"role": "user", "content": text},
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )
        except Exception as e:
            error_type, transient = classify_error(e)
            logger.error(
                f"Provider error ({error_type.value}) for {truncate_text(text, 40)!r}: {e}"
            )
            if transient:
                raise GatewayUnavailable(str(e), error_type.value) from e
            raise TranslationFailure(str(e), error_type.value) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise TranslationFailure(
                f"Malformed provider response: {e}", APIErrorType.MALFORMED.value
            ) from e

        translated = clean_translated_text(content or "")
        if not translated:
            raise TranslationFailure(
                "Provider returned an empty translation", APIErrorType.MALFORMED.value
            )

        if count_lines(translated) != count_lines(text):
            logger.debug(
                f"Line count changed in translation: {count_lines(text)} -> {count_lines(translated)}"
            )

        return translated


def create_client(
    api_key: str,
    base_url: str | None = None,
    timeout: float = 60.0
) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client with SDK retries disabled.

    Args:
        api_key: API key for authentication
        base_url: API base URL (None for the SDK default)
        timeout: Default timeout for requests

    Returns:
        Configured AsyncOpenAI client
    """
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        max_retries=0,
    )
