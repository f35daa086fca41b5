"""
LLM Provider Factory

One chat-completion interface over the supported LLM vendors (OpenAI, Mistral).
The evaluator and the difficulty validator only depend on LLMProvider, so the
vendor is chosen by configuration (LLM_PROVIDER) and tests can inject fakes.
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

JSON_RESPONSE_FORMAT = {"type": "json_object"}


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    @abstractmethod
    def create_chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        response_format: Optional[Dict] = None,
        timeout: float = 30.0
    ) -> Dict[str, Any]:
        """
        Run a chat completion and return a normalized response.

        Returns:
            dict with:
            - content: str, the reply text
            - model: str, the model that answered
            - usage: dict with prompt_tokens, completion_tokens, total_tokens

        Raises:
            Any vendor SDK error (network, auth, timeout). Callers decide how
            to recover.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the provider identifier ('openai', 'mistral')"""


def _usage_dict(usage) -> Dict[str, int]:
    if usage is None:
        return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    return {
        "prompt_tokens": usage.prompt_tokens or 0,
        "completion_tokens": usage.completion_tokens or 0,
        "total_tokens": usage.total_tokens or 0,
    }


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions"""

    def __init__(self, api_key: Optional[str] = None):
        from openai import OpenAI

        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not found in environment variables")

        self.client = OpenAI(api_key=self.api_key)
        logger.info("Initialized OpenAI provider")

    def create_chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        response_format: Optional[Dict] = None,
        timeout: float = 30.0
    ) -> Dict[str, Any]:
        api_params = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": timeout,
        }
        if response_format:
            api_params["response_format"] = response_format

        response = self.client.chat.completions.create(**api_params)

        return {
            "content": response.choices[0].message.content or "",
            "model": response.model,
            "usage": _usage_dict(response.usage),
        }

    def get_provider_name(self) -> str:
        return "openai"


class MistralProvider(LLMProvider):
    """Mistral AI chat completions"""

    # Models known to honour {"type": "json_object"}
    JSON_MODE_MODELS = {
        "mistral-large-latest",
        "mistral-small-latest",
        "mistral-medium-latest",
    }

    def __init__(self, api_key: Optional[str] = None):
        from mistralai import Mistral

        self.api_key = api_key or os.getenv("MISTRAL_API_KEY")
        if not self.api_key:
            raise ValueError("MISTRAL_API_KEY not found in environment variables")

        self.client = Mistral(api_key=self.api_key)
        logger.info("Initialized Mistral provider")

    def create_chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        response_format: Optional[Dict] = None,
        timeout: float = 30.0
    ) -> Dict[str, Any]:
        api_params = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            # Mistral SDK takes the timeout in milliseconds
            "timeout_ms": int(timeout * 1000),
        }
        if response_format:
            if model in self.JSON_MODE_MODELS:
                api_params["response_format"] = JSON_RESPONSE_FORMAT
            else:
                logger.warning(f"Model {model} may not support JSON mode, sending plain request")

        response = self.client.chat.complete(**api_params)

        return {
            "content": response.choices[0].message.content or "",
            "model": response.model,
            "usage": _usage_dict(response.usage),
        }

    def get_provider_name(self) -> str:
        return "mistral"


class LLMProviderFactory:
    """Factory class for creating LLM provider instances"""

    PROVIDERS = {
        "openai": OpenAIProvider,
        "mistral": MistralProvider,
    }

    # Default models per provider
    DEFAULT_MODELS = {
        "openai": "gpt-4o-mini",
        "mistral": "mistral-small-latest",
    }

    @staticmethod
    def _resolve_name(provider_name: Optional[str]) -> str:
        if provider_name is None:
            provider_name = os.getenv("LLM_PROVIDER", "mistral")
        return provider_name.lower()

    @staticmethod
    def create_provider(provider_name: Optional[str] = None) -> LLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider_name: "openai" or "mistral". None reads LLM_PROVIDER
                          (default: "mistral")

        Raises:
            ValueError: If the provider is unknown or its API key is missing
        """
        provider_name = LLMProviderFactory._resolve_name(provider_name)
        provider_class = LLMProviderFactory.PROVIDERS.get(provider_name)
        if provider_class is None:
            raise ValueError(
                f"Unsupported LLM provider: {provider_name}. "
                f"Supported providers: {', '.join(LLMProviderFactory.PROVIDERS)}"
            )

        logger.info(f"Creating LLM provider: {provider_name}")
        return provider_class()

    @staticmethod
    def get_default_model(provider_name: Optional[str] = None) -> str:
        provider_name = LLMProviderFactory._resolve_name(provider_name)
        return LLMProviderFactory.DEFAULT_MODELS.get(provider_name, "mistral-small-latest")


def get_llm_client(provider_name: Optional[str] = None) -> LLMProvider:
    """Shortcut for LLMProviderFactory.create_provider()"""
    return LLMProviderFactory.create_provider(provider_name)
