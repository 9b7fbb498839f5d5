"""
Section text generation for words via Ollama's /api/generate endpoint.

Every public method returns a string: transport failures, timeouts,
malformed replies and near-empty answers are all resolved to a canned,
section-specific fallback so that callers never have to handle an
exception from the model.  All prompts are module-level constants so they
can be tuned without touching logic code.

Public API
----------
OllamaWordClient.request_fast_section(word)            -> str
OllamaWordClient.request_section(prompt, section_key)  -> str
OllamaWordClient.build_prompt(section_key, word)       -> str
OllamaWordClient.get_fallback_for_section(section_key) -> str
OllamaWordClient.check_health()                        -> bool
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from words_wall.config import settings
from words_wall.services.content_assembler import SectionKey

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Backend reply
# ---------------------------------------------------------------------------

class GenerateResponse(BaseModel):
    """The part of Ollama's non-streaming /api/generate reply we rely on."""

    model_config = ConfigDict(extra="ignore")

    response: str
    model: Optional[str] = None
    done: bool = True


# ---------------------------------------------------------------------------
# Prompt templates: edit these to tune LLM output without touching logic
# ---------------------------------------------------------------------------

_NO_THINKING = "请不要返回Thinking过程"

_FAST_PROMPT = """\
请简要解释英语单词 "{word}"：
1. 词性
2. 最常用的中文含义（第一行只写中文含义）
3. 一个简单例句（英文+中文翻译）
请控制在100字以内。 """ + _NO_THINKING

_SECTION_PROMPTS: Dict[SectionKey, str] = {
    SectionKey.BASIC_MEANING: _FAST_PROMPT,
    SectionKey.DETAILED_MEANING: """\
请详细解释英语单词 "{word}" 的含义：
1. 在不同语境下的含义
2. 常见用法
3. 重要说明
请用中文详细说明。 """ + _NO_THINKING,
    SectionKey.USAGE_EXAMPLES: """\
请提供英语单词 "{word}" 的使用例句：
1. 日常对话例句 (英文+中文翻译)
2. 书面语例句 (英文+中文翻译)
3. 专业场合例句 (英文+中文翻译)
每个例句都要有中文翻译。 """ + _NO_THINKING,
    SectionKey.SYNONYMS: """\
请列出英语单词 "{word}" 的近义词：
1. 列出3-5个常见近义词
2. 简单说明它们的区别
3. 举例说明用法差异
请用中文说明。 """ + _NO_THINKING,
    SectionKey.COLLOCATIONS: """\
请提供英语单词 "{word}" 的常用搭配：
1. 常见的词组搭配
2. 固定短语表达
3. 习惯用法
请用中文说明含义。 """ + _NO_THINKING,
}

# Canned text substituted whenever the model fails or answers (almost) nothing
_SECTION_FALLBACKS: Dict[SectionKey, str] = {
    SectionKey.BASIC_MEANING: "暂时无法生成基本含义，请稍后刷新或手动编辑此卡片。",
    SectionKey.DETAILED_MEANING: "详细释义暂时无法生成，请稍后重试或手动补充。",
    SectionKey.USAGE_EXAMPLES: "例句暂时无法生成，请稍后重试或手动补充使用场景。",
    SectionKey.SYNONYMS: "近义词暂时无法生成，请稍后重试或手动补充。",
    SectionKey.COLLOCATIONS: "常用搭配暂时无法生成，请稍后重试或手动补充。",
}

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_THINK_CLOSE = re.compile(r"</think>", re.IGNORECASE)
_THINK_UNTERMINATED = re.compile(r"<think>.*\Z", re.DOTALL | re.IGNORECASE)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OllamaWordClient:
    """
    Word section generator via Ollama /api/generate.

    The local model cannot serve concurrent requests reliably, so calls are
    serialised with a single-slot semaphore.  Never raises from the public
    request methods.
    """

    MAX_CONCURRENT: int = 1
    LLM_TIMEOUT: float = float(settings.OLLAMA_TIMEOUT)  # default 180s from config
    MIN_RESPONSE_LENGTH: int = settings.MIN_RESPONSE_LENGTH

    # Expose templates as class attributes so callers can hot-patch them
    FAST_PROMPT = _FAST_PROMPT
    SECTION_PROMPTS = _SECTION_PROMPTS
    SECTION_FALLBACKS = _SECTION_FALLBACKS

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_LLM_MODEL
        self.timeout_seconds = float(timeout if timeout is not None else self.LLM_TIMEOUT)
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self._transport = transport
        self._semaphore = asyncio.Semaphore(self.MAX_CONCURRENT)

    # ------------------------------------------------------------------
    # Public generation methods
    # ------------------------------------------------------------------

    async def request_fast_section(self, word: str) -> str:
        """
        Generate the short basic-meaning section for *word*.

        Used on the synchronous path, before the user has seen anything.
        Same fallback discipline as :meth:`request_section`.
        """
        prompt = self.FAST_PROMPT.format(word=word)
        return await self.request_section(prompt, SectionKey.BASIC_MEANING)

    async def request_section(
        self,
        prompt: str,
        section_key: Union[SectionKey, str],
    ) -> str:
        """
        Send *prompt* and return the cleaned reply for *section_key*.

        Reasoning markup is stripped.  A reply shorter than
        MIN_RESPONSE_LENGTH after cleaning, or any transport failure, yields
        the section's canned fallback instead.
        """
        key = SectionKey(section_key)

        raw = await self._call_llm(prompt)
        if raw is None:
            logger.warning("request_section[%s]: using fallback (LLM call failed)", key.value)
            return self.get_fallback_for_section(key)

        cleaned = self.strip_reasoning(raw)
        if len(cleaned) < self.MIN_RESPONSE_LENGTH:
            logger.warning(
                "request_section[%s]: reply too short (%d chars) — using fallback",
                key.value,
                len(cleaned),
            )
            return self.get_fallback_for_section(key)

        logger.info("request_section[%s]: %d chars generated", key.value, len(cleaned))
        return cleaned

    def build_prompt(self, section_key: Union[SectionKey, str], word: str) -> str:
        """Return the prompt for *section_key* about *word*."""
        return self.SECTION_PROMPTS[SectionKey(section_key)].format(word=word)

    def get_fallback_for_section(self, section_key: Union[SectionKey, str]) -> str:
        return self.SECTION_FALLBACKS[SectionKey(section_key)]

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def list_models(self) -> Optional[List[str]]:
        """Return the model names Ollama has pulled, or None if unreachable."""
        try:
            async with self._client(timeout=10.0) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code != 200:
                logger.warning("list_models: Ollama responded with status %d", resp.status_code)
                return None
            return [m.get("name", "") for m in resp.json().get("models", [])]
        except Exception as exc:
            logger.error("list_models: Ollama unreachable — %s", exc)
            return None

    async def check_health(self) -> bool:
        """Return ``True`` if Ollama is reachable and returns HTTP 200."""
        try:
            async with self._client(timeout=5.0) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                return resp.status_code == 200
        except Exception as exc:
            logger.error("Ollama health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Core LLM caller
    # ------------------------------------------------------------------

    def _client(self, timeout: Optional[Union[float, httpx.Timeout]] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self._transport,
        )

    async def _call_llm(self, prompt: str) -> Optional[str]:
        """
        POST to Ollama /api/generate and return the raw ``response`` text.

        Uses the semaphore so only one generation runs at a time.  Returns
        None on any error (timeout, connection failure, non-200 response,
        reply that does not match GenerateResponse).
        """
        async with self._semaphore:
            try:
                async with self._client() as client:
                    resp = await client.post(
                        f"{self.base_url}/api/generate",
                        json={
                            "model": self.model,
                            "prompt": prompt,
                            "stream": False,
                        },
                    )

                if resp.status_code != 200:
                    logger.error(
                        "_call_llm: Ollama returned HTTP %d: %s",
                        resp.status_code,
                        resp.text[:300],
                    )
                    return None

                return GenerateResponse.model_validate(resp.json()).response

            except httpx.TimeoutException:
                logger.error(
                    "_call_llm: request timed out after %.0f s", self.timeout_seconds
                )
                return None
            except httpx.ConnectError as exc:
                logger.error("_call_llm: connection error — %s", exc)
                return None
            except (ValidationError, ValueError) as exc:
                logger.error("_call_llm: malformed reply — %s", exc)
                return None
            except Exception as exc:
                logger.error("_call_llm: unexpected error — %s", exc)
                return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def strip_reasoning(text: str) -> str:
        """
        Remove ``<think>…</think>`` reasoning blocks from a model reply.

        Handles complete blocks, a dangling closing tag (the opening tag was
        never emitted) and an opening tag that is never closed, in which
        case everything from the tag to the end is dropped.
        """
        if not text:
            return ""
        cleaned = _THINK_BLOCK.sub("", text)
        parts = _THINK_CLOSE.split(cleaned)
        if len(parts) > 1:
            cleaned = parts[-1]
        cleaned = _THINK_UNTERMINATED.sub("", cleaned)
        return cleaned.strip()
