"""
LLM Client Abstraction Layer.

Provides a unified interface for the tutor's chat model that can switch between:
- Gemini API (Google's cloud API, default)
- OpenAI-compatible APIs
- Ollama (local inference)

Every provider goes through the same httpx request path; subclasses only
describe the request body and how to read the reply. The system
instruction always travels separately from the conversation so each
provider can place it where it expects it.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Sequence, Tuple

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 8192


@dataclass
class LLMMessage:
    """A message in a chat conversation."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None  # token usage if available


class LLMError(Exception):
    """Raised when LLM call fails."""
    pass


def get_default_temperature() -> float:
    return float(getattr(settings, 'LLM_TEMPERATURE', DEFAULT_TEMPERATURE))


def get_default_max_tokens() -> int:
    return int(getattr(settings, 'LLM_MAX_TOKENS', DEFAULT_MAX_TOKENS))


def error_detail(response: httpx.Response) -> str:
    """Best-effort error message from a provider's JSON error body."""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or ""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message", "")
    return str(error or "")


class BaseLLMClient(ABC):
    """
    Abstract base class for LLM clients.

    Subclasses implement endpoint(), build_request_body() and
    parse_response(); chat() handles transport and error mapping.
    """

    provider = "LLM"
    timeout: float = 120

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name being used."""
        pass

    @abstractmethod
    def endpoint(self) -> str:
        pass

    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def build_request_body(
        self,
        messages: List[LLMMessage],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        """
        Read the reply text out of a provider payload.

        Raises:
            LLMError: If the payload carries no usable text
        """
        pass

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of messages in the conversation
            temperature: Sampling temperature (0-1), settings default when None
            max_tokens: Maximum tokens in response, settings default when None

        Returns:
            LLMResponse with the model's response

        Raises:
            LLMError: If the request fails
        """
        temperature = get_default_temperature() if temperature is None else temperature
        max_tokens = get_default_max_tokens() if max_tokens is None else max_tokens
        logger.info(f"Calling {self.provider}: model={self.model_name}, temp={temperature}")

        body = self.build_request_body(messages, temperature, max_tokens)

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(self.endpoint(), json=body, headers=self.headers())
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"{self.provider} HTTP error: {status}")
            raise LLMError(f"{self.provider} API error {status}: {error_detail(e.response)}")
        except httpx.TimeoutException:
            logger.error(f"{self.provider} request timed out")
            raise LLMError(f"{self.provider} API timed out")
        except httpx.RequestError as e:
            logger.error(f"{self.provider} connection error: {e}")
            raise LLMError(f"Could not connect to {self.provider} API")
        except ValueError:
            raise LLMError(f"Invalid JSON from {self.provider} API")

        result = self.parse_response(data)
        logger.info(f"{self.provider} response: {len(result.content)} chars")
        return result

    def generate(
        self,
        system_instruction: str,
        history: Sequence[Tuple[str, str]],
        message: str,
    ) -> str:
        """
        Generate the assistant's reply for one turn.

        Args:
            system_instruction: Persona and navigation rules
            history: Prior (role, content) pairs, oldest first
            message: The composed outbound prompt for this turn

        Returns:
            The reply text
        """
        messages = [LLMMessage(role="system", content=system_instruction)]
        messages.extend(LLMMessage(role=role, content=content) for role, content in history)
        messages.append(LLMMessage(role="user", content=message))
        return self.chat(messages).content


def as_role_dicts(messages: List[LLMMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


class GeminiClient(BaseLLMClient):
    """LLM client for Google Gemini API."""

    provider = "Gemini"

    TOP_P = 0.8
    TOP_K = 40

    def __init__(self):
        self.api_key = getattr(settings, 'GEMINI_API_KEY', '')
        self.model = getattr(settings, 'GEMINI_MODEL', 'gemini-2.0-flash')
        self.timeout = getattr(settings, 'GEMINI_TIMEOUT', 120)
        self.base_url = getattr(
            settings, 'GEMINI_BASE_URL', "https://generativelanguage.googleapis.com/v1beta"
        )

        if not self.api_key:
            raise LLMError("GEMINI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent?key={self.api_key}"

    def build_request_body(
        self,
        messages: List[LLMMessage],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        """Convert messages to Gemini's contents/parts structure."""
        system_texts = [m.content for m in messages if m.role == "system"]
        contents = [
            {
                # Gemini calls the assistant "model"
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != "system"
        ]

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "topP": self.TOP_P,
                "topK": self.TOP_K,
                "maxOutputTokens": max_tokens,
                "responseMimeType": "text/plain",
            }
        }
        if system_texts:
            body["systemInstruction"] = {"parts": [{"text": system_texts[-1]}]}
        return body

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        # {"candidates": [{"content": {"parts": [{"text": "..."}]}}], "usageMetadata": {...}}
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            if reason:
                raise LLMError(f"Request blocked by Gemini: {reason}")
            raise LLMError("No response from Gemini API")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)
        if not content:
            raise LLMError("Empty response from Gemini API")

        usage = None
        meta = data.get("usageMetadata")
        if meta:
            usage = {
                "prompt_tokens": meta.get("promptTokenCount", 0),
                "completion_tokens": meta.get("candidatesTokenCount", 0),
                "total_tokens": meta.get("totalTokenCount", 0),
            }
        return LLMResponse(content=content, model=self.model, usage=usage)


class OpenAICompatibleClient(BaseLLMClient):
    """
    LLM client for OpenAI-compatible APIs.

    Works with: OpenAI, Azure OpenAI, Groq, Together, local servers, etc.
    """

    provider = "OpenAI"

    def __init__(self):
        self.api_key = getattr(settings, 'OPENAI_API_KEY', '')
        self.base_url = getattr(settings, 'OPENAI_BASE_URL', 'https://api.openai.com/v1')
        self.model = getattr(settings, 'OPENAI_MODEL', 'gpt-4o-mini')
        self.timeout = getattr(settings, 'OPENAI_TIMEOUT', 120)

        if not self.api_key:
            raise LLMError("OPENAI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_request_body(self, messages, temperature, max_tokens) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": as_role_dicts(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("No choices in OpenAI response")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise LLMError("Empty response from OpenAI")

        return LLMResponse(content=content, model=self.model, usage=data.get("usage"))


class OllamaClient(BaseLLMClient):
    """LLM client for Ollama local inference."""

    provider = "Ollama"

    def __init__(self):
        self.base_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
        self.model = getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')
        self.timeout = getattr(settings, 'OLLAMA_CHAT_TIMEOUT', 600)

    @property
    def model_name(self) -> str:
        return self.model

    def endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    def build_request_body(self, messages, temperature, max_tokens) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": as_role_dicts(messages),
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            }
        }

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        content = (data.get("message") or {}).get("content") or ""
        if not content:
            raise LLMError("Empty response from Ollama")
        return LLMResponse(content=content, model=self.model)


# =============================================================================
# Client Factory
# =============================================================================

_client_instance: Optional[BaseLLMClient] = None


def get_llm_client() -> BaseLLMClient:
    """
    Get the configured LLM client instance.

    Uses LLM_PROVIDER setting to determine which client to use:
    - "gemini" (default): Google Gemini API
    - "openai": OpenAI or compatible API
    - "ollama": Local Ollama inference

    Raises:
        LLMError: If the selected provider is missing its API key
    """
    global _client_instance

    if _client_instance is not None:
        return _client_instance

    provider = getattr(settings, 'LLM_PROVIDER', 'gemini').lower()

    if provider == 'openai':
        logger.info("Using OpenAI-compatible API for LLM inference")
        _client_instance = OpenAICompatibleClient()
    elif provider == 'ollama':
        logger.info("Using Ollama for LLM inference")
        _client_instance = OllamaClient()
    else:
        logger.info("Using Gemini API for LLM inference")
        _client_instance = GeminiClient()

    return _client_instance


def reset_llm_client():
    """Reset the cached client instance. Useful for testing."""
    global _client_instance
    _client_instance = None


def get_model_name() -> str:
    """Get the name of the configured model."""
    return get_llm_client().model_name
