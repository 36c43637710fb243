"""
Model provider abstraction for story generation.

Supports multiple LLM backends:
- OpenAI - default, JSON mode with deterministic seed
- Claude (Anthropic) - no seed parameter; temperature 0 stands in
- Ollama (local models) - seed passed through model options

Usage:
    provider = get_provider("ollama:llama3")
    result = await provider.generate(system_prompt, messages, config)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import anthropic
import httpx
import openai

from bedtime.infra.clients import get_openai_client
from bedtime.pipeline.errors import GenerationTransportError

logger = logging.getLogger("bedtime_story_generator")

DEFAULT_OPENAI_MODEL = "gpt-4o"


@dataclass
class ModelInfo:
    """Model identification information."""
    provider: str  # "openai", "anthropic", "ollama"
    model_name: str  # e.g., "gpt-4o", "claude-sonnet-4-5-20250929", "llama3"
    full_spec: str  # e.g., "gpt-4o", "ollama:llama3"


@dataclass
class GenerationResult:
    """Result from text generation."""
    text: str
    usage: Optional[Dict[str, int]]
    provider: str
    model: str


def parse_model_spec(model_spec: Optional[str]) -> ModelInfo:
    """
    Parse model specification string into provider and model name.

    Formats:
    - "ollama:llama3" -> provider="ollama", model="llama3"
    - "claude-sonnet-4-5-20250929" -> provider="anthropic"
    - "openai:gpt-4o" or "gpt-4o" -> provider="openai"
    - None -> STORY_MODEL env var, else OpenAI default

    Args:
        model_spec: Model specification string or None for default

    Returns:
        ModelInfo with provider and model name
    """
    if model_spec is None:
        model_spec = os.getenv("STORY_MODEL", DEFAULT_OPENAI_MODEL)

    if model_spec.startswith("ollama:"):
        return ModelInfo(
            provider="ollama",
            model_name=model_spec.split(":", 1)[1],
            full_spec=model_spec
        )

    if model_spec.startswith("openai:"):
        return ModelInfo(
            provider="openai",
            model_name=model_spec.split(":", 1)[1],
            full_spec=model_spec
        )

    if model_spec.startswith("claude"):
        return ModelInfo(
            provider="anthropic",
            model_name=model_spec,
            full_spec=model_spec
        )

    return ModelInfo(
        provider="openai",
        model_name=model_spec,
        full_spec=model_spec
    )


class ModelProvider(ABC):
    """Abstract base class for model providers."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        config: Dict[str, Any]
    ) -> GenerationResult:
        """
        Generate a JSON reply from the model.

        Args:
            system_prompt: System prompt text
            messages: Conversation (user/assistant turns)
            config: seed, temperature, max_tokens, user

        Returns:
            GenerationResult with generated text and metadata

        Raises:
            GenerationTransportError: On network or provider failure
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return provider name for metadata."""
        pass


class OpenAIProvider(ModelProvider):
    """OpenAI chat completions provider."""

    def __init__(self, model_name: str):
        self.model_name = model_name

    @property
    def provider_name(self) -> str:
        return "openai"

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using the OpenAI chat completions API in JSON mode."""
        logger.info(f"[OpenAIProvider] Generating with {self.model_name} (seed={config.get('seed')})")
        client = get_openai_client()

        request: Dict[str, Any] = {
            "model": self.model_name,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "response_format": {"type": "json_object"},
        }
        if config.get("seed") is not None:
            request["seed"] = int(config["seed"])
        if config.get("temperature") is not None:
            request["temperature"] = float(config["temperature"])
        if config.get("user"):
            request["user"] = config["user"]

        try:
            completion = await client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            logger.error(f"[OpenAIProvider] Generation failed: {e}")
            raise GenerationTransportError(f"OpenAI generation failed: {e}") from e

        if not completion.choices or not completion.choices[0].message.content:
            raise GenerationTransportError("no response from API")

        text = completion.choices[0].message.content

        usage = None
        if completion.usage is not None:
            usage = {
                "input_tokens": completion.usage.prompt_tokens,
                "output_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }

        logger.info(f"[OpenAIProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


class ClaudeProvider(ModelProvider):
    """Claude (Anthropic) model provider."""

    def __init__(self, model_name: str):
        self.model_name = model_name

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using Claude API."""
        logger.info(f"[ClaudeProvider] Generating with {self.model_name}")

        # The Messages API has no seed; pin temperature for repeatable remixes
        temperature = config.get("temperature")
        if temperature is None:
            temperature = 0.0 if config.get("seed") is not None else 0.8

        client = anthropic.AsyncAnthropic(api_key=os.getenv("ANTHROPIC_API_KEY"))

        try:
            message = await client.messages.create(
                model=self.model_name,
                max_tokens=int(config.get("max_tokens", 4096)),
                temperature=float(temperature),
                system=system_prompt,
                messages=messages,
            )
        except anthropic.AnthropicError as e:
            logger.error(f"[ClaudeProvider] Generation failed: {e}")
            raise GenerationTransportError(f"Claude generation failed: {e}") from e

        if not message.content:
            raise GenerationTransportError("no response from API")

        text = message.content[0].text

        usage = None
        if hasattr(message, 'usage') and message.usage:
            try:
                usage = {
                    "input_tokens": message.usage.input_tokens,
                    "output_tokens": message.usage.output_tokens,
                    "total_tokens": message.usage.input_tokens + message.usage.output_tokens
                }
            except (AttributeError, TypeError):
                pass

        logger.info(f"[ClaudeProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


class OllamaProvider(ModelProvider):
    """Ollama (local) model provider."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        self.base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using the Ollama chat API in JSON format."""
        logger.info(f"[OllamaProvider] Generating with {self.model_name}")

        options: Dict[str, Any] = {
            "temperature": float(config.get("temperature", 0.8)),
            "num_predict": int(config.get("max_tokens", 4096)),
        }
        if config.get("seed") is not None:
            options["seed"] = int(config["seed"])

        request_body = {
            "model": self.model_name,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "stream": False,
            "format": "json",
            "options": options,
        }

        timeout = int(config.get("timeout", 600))

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(f"{self.base_url}/api/chat", json=request_body)
                response.raise_for_status()
                response_json = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"[OllamaProvider] Timeout after {timeout}s")
            raise GenerationTransportError(f"Ollama timeout after {timeout}s") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[OllamaProvider] Request failed: {e}")
            raise GenerationTransportError(f"Ollama request failed: {e}") from e

        if "error" in response_json:
            raise GenerationTransportError(f"Ollama error: {response_json['error']}")

        text = (response_json.get("message") or {}).get("content", "")

        usage = None
        if "eval_count" in response_json:
            usage = {
                "input_tokens": response_json.get("prompt_eval_count", 0),
                "output_tokens": response_json.get("eval_count", 0),
                "total_tokens": response_json.get("prompt_eval_count", 0) + response_json.get("eval_count", 0)
            }

        logger.info(f"[OllamaProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


def get_provider(model_spec: Optional[str] = None) -> ModelProvider:
    """
    Get appropriate model provider for the given model specification.

    Args:
        model_spec: e.g. "gpt-4o", "ollama:llama3", "claude-sonnet-4-5-20250929";
                   None uses STORY_MODEL from the environment

    Returns:
        ModelProvider instance
    """
    info = parse_model_spec(model_spec)

    if info.provider == "ollama":
        return OllamaProvider(info.model_name)
    if info.provider == "anthropic":
        return ClaudeProvider(info.model_name)
    return OpenAIProvider(info.model_name)


def get_model_info(model_spec: Optional[str] = None) -> ModelInfo:
    """Get model information without creating a provider."""
    return parse_model_spec(model_spec)
