# interview_engine/llm/__init__.py
from .client import LLMClient, OpenAILLMClient, classify_upstream_error

__all__ = ["LLMClient", "OpenAILLMClient", "classify_upstream_error"]
