"""Engine domain: embedding and summarization collaborators."""

from stratamem.engine.embedding import build_embedder
from stratamem.engine.embedding import Embedder
from stratamem.engine.embedding import HashingEmbedder
from stratamem.engine.embedding import OpenAICompatibleEmbedder
from stratamem.engine.llm_adapters import build_llm_adapter
from stratamem.engine.llm_adapters import LLMAdapter
from stratamem.engine.llm_adapters import LLMError
from stratamem.engine.llm_adapters import NoopLLMAdapter
from stratamem.engine.llm_adapters import OpenAICompatibleLLMAdapter
from stratamem.engine.summarization import extract_keywords
from stratamem.engine.summarization import ExtractiveSummarizer
from stratamem.engine.summarization import LLMSummarizer
from stratamem.engine.summarization import Summarizer

__all__ = [
    "Embedder",
    "ExtractiveSummarizer",
    "HashingEmbedder",
    "LLMAdapter",
    "LLMError",
    "LLMSummarizer",
    "NoopLLMAdapter",
    "OpenAICompatibleEmbedder",
    "OpenAICompatibleLLMAdapter",
    "Summarizer",
    "build_embedder",
    "build_llm_adapter",
    "extract_keywords",
]
