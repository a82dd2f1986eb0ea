# interview_engine/llm/client.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Dict, Optional

import openai
from openai import AzureOpenAI, OpenAI

from interview_engine.config import Settings, get_settings
from interview_engine.errors import (
    InterviewError,
    UpstreamQuotaError,
    UpstreamServiceError,
)


QUOTA_MARKERS = ("quota", "rate limit", "429", "too many requests")


class LLMClient(ABC):
    """
    Simple abstraction so we can swap providers if needed.
    """

    @abstractmethod
    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        messages: list of {"role": "system"|"user"|"assistant", "content": "..."}
        returns: assistant content as a string
        """
        ...

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """One system + one user message in, the trimmed completion text out."""
        content = self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ]
        )
        return (content or "").strip()


class OpenAILLMClient(LLMClient):
    """
    OpenAI implementation using the official Python client. When
    AZURE_OPENAI_ENDPOINT is set the Azure flavour is used and the model
    name is the deployment name.
    """

    def __init__(self, model: Optional[str] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        if not settings.openai_api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set in environment (.env)."
            )

        if settings.azure_openai_endpoint:
            self.client = AzureOpenAI(
                api_key=settings.openai_api_key,
                azure_endpoint=settings.azure_openai_endpoint,
                api_version=settings.azure_openai_api_version,
            )
        else:
            self.client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
        self.default_model = model or settings.llm_model
        self.max_completion_tokens = settings.llm_max_completion_tokens

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        completion = self.client.chat.completions.create(
            model=model or self.default_model,
            messages=messages,
            max_completion_tokens=self.max_completion_tokens,
            **kwargs,
        )
        if not completion.choices:
            return ""
        content = completion.choices[0].message.content
        return content or ""


def is_quota_error(exc: BaseException) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in QUOTA_MARKERS)


def classify_upstream_error(exc: BaseException) -> InterviewError:
    """
    Map anything the completion call raised to the error the caller sees.
    The exception text never reaches the caller.
    """
    if is_quota_error(exc):
        return UpstreamQuotaError()
    return UpstreamServiceError()
