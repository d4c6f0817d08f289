"""Multi-level chunk summarizers.

Summary levels count from 1.  The LLM summarizer asks for a high-level
summary at level 1 and more detail at each further level; the extractive
summarizer keeps roughly 1/level of the sentences.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections import Counter
from typing import Protocol
from typing import runtime_checkable

from stratamem.config import LLMConfig
from stratamem.config import SummarizationConfig
from stratamem.engine.llm_adapters import LLMAdapter
from stratamem.engine.llm_adapters import LLMError
from stratamem.models.chunk import ChunkSummary

logger = logging.getLogger(__name__)


@runtime_checkable
class Summarizer(Protocol):
    """Protocol for summarizers used by ``MemoryManager.create_chunk``."""

    async def summarize(self, text: str, levels: int = 3) -> list[ChunkSummary]: ...


# ---------------------------------------------------------------------------
# Keyword extraction
# ---------------------------------------------------------------------------

_STOP_WORDS = frozenset(
    """
    the and but for nor yet with about across after along around over under
    above below from into onto upon then than that this these those which
    while when where whose whom what will would they them their there here
    have been being were your yours who why how because
    """.split()
)
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: str, max_keywords: int = 5) -> list[str]:
    """Most frequent words longer than three letters, stop words excluded.

    Ties keep first-occurrence order.
    """
    words = [
        word
        for word in _NON_WORD_RE.sub("", text.lower()).split()
        if len(word) > 3 and word not in _STOP_WORDS
    ]
    return [word for word, _ in Counter(words).most_common(max_keywords)]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END_RE.split(text) if s.strip()]


# ---------------------------------------------------------------------------
# Extractive summarizer
# ---------------------------------------------------------------------------


class ExtractiveSummarizer(Summarizer):
    """Picks evenly spaced sentences; level *n* keeps about 1/n of them."""

    def __init__(self, config: SummarizationConfig | None = None) -> None:
        self._config = config or SummarizationConfig()

    async def summarize(self, text: str, levels: int = 3) -> list[ChunkSummary]:
        return [self.summarize_level(text, level) for level in range(1, levels + 1)]

    def summarize_level(self, text: str, level: int) -> ChunkSummary:
        sentences = split_sentences(text)
        if not sentences:
            return ChunkSummary(level=level, content="", concepts=[])

        count = max(1, min(len(sentences), math.ceil(len(sentences) / level)))
        if count == 1:
            selected = [sentences[0]]
        elif count == 2:
            selected = [sentences[0], sentences[-1]]
        else:
            step = len(sentences) / count
            selected = [sentences[min(len(sentences) - 1, int(i * step))] for i in range(count)]

        content = " ".join(selected)
        return ChunkSummary(
            level=level,
            content=content,
            concepts=extract_keywords(content, self._config.max_keywords * level),
        )


# ---------------------------------------------------------------------------
# LLM summarizer
# ---------------------------------------------------------------------------

_LEVEL_PROMPTS = {
    1: "Summarize the following text in 1-2 sentences, focusing only on the most important points:",
    2: "Provide a paragraph-length summary of the following text, including the main points and key supporting details:",
    3: "Provide a detailed summary of the following text, capturing all significant information and relationships:",
}
_CONCEPTS_PROMPT = "Extract 5-10 key concepts from this text as a JSON array of strings:"


def _parse_concepts(raw: str) -> list[str]:
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]
    cleaned = re.sub(r'[\[\]"]', "", raw)
    return [part.strip() for part in cleaned.split(",") if part.strip()]


class LLMSummarizer(Summarizer):
    """Asks an LLM for one summary per level plus its key concepts.

    Any ``LLMError`` falls back to the extractive summaries for the whole
    call.
    """

    def __init__(
        self,
        llm: LLMAdapter,
        *,
        llm_config: LLMConfig | None = None,
        config: SummarizationConfig | None = None,
    ) -> None:
        self._llm = llm
        self._llm_config = llm_config or LLMConfig()
        self._fallback = ExtractiveSummarizer(config)

    async def _complete(self, prompt: str) -> str:
        return await self._llm.complete(
            prompt,
            temperature=self._llm_config.temperature,
            max_tokens=self._llm_config.max_tokens,
            timeout_seconds=self._llm_config.timeout_seconds,
        )

    async def summarize(self, text: str, levels: int = 3) -> list[ChunkSummary]:
        try:
            summaries = []
            for level in range(1, levels + 1):
                instruction = _LEVEL_PROMPTS.get(level, _LEVEL_PROMPTS[3])
                content = (await self._complete(f"{instruction}\n{text}")).strip()
                concepts = _parse_concepts(await self._complete(f"{_CONCEPTS_PROMPT}\n{content}"))
                summaries.append(ChunkSummary(level=level, content=content, concepts=concepts))
            return summaries
        except LLMError as exc:
            logger.warning("LLM summarization failed, using extractive fallback: %s", exc)
            return await self._fallback.summarize(text, levels)
