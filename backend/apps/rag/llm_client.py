"""
LLM Client Abstraction Layer.

Provides a unified interface for the two capabilities the query pipeline
consumes, chat completion and text embedding, over:
- OpenAI-compatible APIs (OpenAI, Azure OpenAI, llama.cpp, vLLM, LM Studio...)
- Ollama (local inference)

Transport failures are reported as LLMError / EmbeddingError. Nothing here
retries; a failed call fails the request.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Dict, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


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


class EmbeddingError(LLMError):
    """Raised when embedding generation fails."""
    pass


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of messages in the conversation
            model: Model name overriding the configured default
            temperature: Sampling temperature (0-1)

        Returns:
            LLMResponse with the model's response

        Raises:
            LLMError: If the request fails or the provider returns nothing
        """
        pass

    @abstractmethod
    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """
        Generate an embedding vector for a text.

        Raises:
            EmbeddingError: If the request fails or the provider returns nothing
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the default chat model name."""
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the provider answers at all."""
        pass


class OllamaClient(BaseLLMClient):
    """LLM client for Ollama local inference."""

    def __init__(self):
        self.base_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
        self.model = getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')
        self.embed_model = getattr(settings, 'OLLAMA_EMBED_MODEL', 'nomic-embed-text')
        self.timeout = getattr(settings, 'OLLAMA_CHAT_TIMEOUT', 600)
        self.embed_timeout = getattr(settings, 'OLLAMA_EMBED_TIMEOUT', 120)

    @property
    def model_name(self) -> str:
        return self.model

    def chat(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Send chat request to Ollama."""
        model = model or self.model
        logger.info(f"Calling Ollama chat: model={model}, temp={temperature}")

        ollama_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": model,
                        "messages": ollama_messages,
                        "stream": False,
                        "options": {
                            "temperature": temperature,
                        }
                    }
                )
                response.raise_for_status()
                data = response.json()

                content = data.get("message", {}).get("content", "")
                if not content:
                    raise LLMError("Empty response from Ollama")

                logger.info(f"Ollama response: {len(content)} chars")
                return LLMResponse(content=content, model=model)

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e}")
            raise LLMError(f"Ollama service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Ollama request timed out")
            raise LLMError("Ollama service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise LLMError("Could not connect to Ollama")
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected chat response format: {e}")
            raise LLMError("Invalid response from chat service")

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Generate an embedding with Ollama's /api/embeddings."""
        model = model or self.embed_model

        try:
            with httpx.Client(timeout=float(self.embed_timeout)) as client:
                response = client.post(
                    f"{self.base_url}/api/embeddings",
                    json={
                        "model": model,
                        "prompt": text
                    }
                )
                response.raise_for_status()
                data = response.json()

                # Ollama /api/embeddings returns {"embedding": [...]}
                embedding = data.get("embedding")
                if not embedding:
                    raise EmbeddingError("Ollama returned empty embedding")

                logger.debug(f"Generated embedding with {len(embedding)} dimensions")
                return embedding

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama embedding request failed: {e}")
            raise EmbeddingError(f"Embedding service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Ollama embedding request timed out")
            raise EmbeddingError("Embedding service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise EmbeddingError("Could not connect to embedding service")
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected embedding response format: {e}")
            raise EmbeddingError("Invalid response from embedding service")

    def ping(self) -> bool:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(f"{self.base_url}/api/version")
            return response.status_code == 200


class OpenAICompatibleClient(BaseLLMClient):
    """
    LLM client for OpenAI-compatible APIs.

    Works with: OpenAI, Azure OpenAI, Groq, Together, local servers, etc.
    The API key is optional; local servers usually run without one.
    """

    def __init__(self):
        self.api_key = getattr(settings, 'OPENAI_API_KEY', '')
        self.base_url = getattr(settings, 'OPENAI_BASE_URL', 'https://api.openai.com/v1').rstrip('/')
        self.model = getattr(settings, 'OPENAI_MODEL', 'gpt-4o-mini')
        self.embed_model = getattr(settings, 'OPENAI_EMBED_MODEL', 'text-embedding-3-small')
        self.timeout = getattr(settings, 'OPENAI_TIMEOUT', 120)

    @property
    def model_name(self) -> str:
        return self.model

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def chat(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Send chat request to OpenAI-compatible API."""
        model = model or self.model
        logger.info(f"Calling OpenAI API: model={model}, temp={temperature}")

        # Convert to OpenAI format (same as our internal format)
        openai_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": model,
                        "messages": openai_messages,
                        "temperature": temperature,
                    },
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()

                choices = data.get("choices") or []
                if not choices:
                    raise LLMError("No choices in OpenAI response")

                content = choices[0].get("message", {}).get("content", "")
                if not content:
                    raise LLMError("Empty response from OpenAI")

                usage = data.get("usage")

                logger.info(f"OpenAI response: {len(content)} chars")
                return LLMResponse(content=content, model=model, usage=usage)

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenAI HTTP error: {e}")
            raise LLMError(f"OpenAI API error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("OpenAI request timed out")
            raise LLMError("OpenAI API timed out")
        except httpx.RequestError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise LLMError("Could not connect to OpenAI API")
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected chat response format: {e}")
            raise LLMError("Invalid response from chat service")

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Generate an embedding with the /embeddings endpoint."""
        model = model or self.embed_model

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/embeddings",
                    json={
                        "model": model,
                        "input": text,
                    },
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()

                items = data.get("data") or []
                if not items:
                    raise EmbeddingError("No data in embedding response")

                embedding = items[0].get("embedding")
                if not embedding:
                    raise EmbeddingError("Empty embedding in response")

                logger.debug(f"Generated embedding with {len(embedding)} dimensions")
                return embedding

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise EmbeddingError(f"Embedding service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("OpenAI embedding request timed out")
            raise EmbeddingError("Embedding service timed out")
        except httpx.RequestError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise EmbeddingError("Could not connect to embedding service")
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected embedding response format: {e}")
            raise EmbeddingError("Invalid response from embedding service")

    def ping(self) -> bool:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(f"{self.base_url}/models", headers=self._headers())
            return response.status_code < 500


# =============================================================================
# Client Factory
# =============================================================================

_client_instance: Optional[BaseLLMClient] = None


def get_llm_client() -> BaseLLMClient:
    """
    Get the configured LLM client instance.

    Uses LLM_PROVIDER setting to determine which client to use:
    - "openai" (default): OpenAI or compatible API
    - "ollama": Local Ollama inference

    Returns:
        Configured LLM client instance
    """
    global _client_instance

    # Return cached instance if available
    if _client_instance is not None:
        return _client_instance

    provider = getattr(settings, 'LLM_PROVIDER', 'openai').lower()

    if provider == 'ollama':
        logger.info("Using Ollama for LLM inference")
        _client_instance = OllamaClient()
    elif provider == 'openai':
        logger.info("Using OpenAI-compatible API for LLM inference")
        _client_instance = OpenAICompatibleClient()
    else:
        raise LLMError(f"Unknown LLM_PROVIDER: {provider}")

    return _client_instance


def reset_llm_client():
    """Reset the cached client instance. Useful for testing."""
    global _client_instance
    _client_instance = None


# =============================================================================
# Convenience Functions
# =============================================================================

def complete(
    prompt: str,
    model: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> str:
    """
    Send a single user prompt, optionally preceded by a system preamble.

    Returns:
        The model's response text

    Raises:
        LLMError: If the request fails
    """
    messages = []
    if system_prompt:
        messages.append(LLMMessage(role="system", content=system_prompt))
    messages.append(LLMMessage(role="user", content=prompt))

    response = get_llm_client().chat(messages, model=model)
    return response.content


def get_model_name() -> str:
    """Get the name of the configured model."""
    client = get_llm_client()
    return client.model_name
