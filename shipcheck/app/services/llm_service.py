"""
Structured LLM Service

Given a prompt (text plus an optional image) and a Pydantic output model,
asks a hosted model for a response constrained to the model's JSON schema
and returns a validated instance of it.

Two providers are available:
- OpenAI, through ``response_format`` with a JSON schema
- Anthropic, through a single forced tool whose input schema is the model's

The provider is picked from settings, so callers only depend on
``StructuredLLMService``.
"""

import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

from anthropic import AnthropicError, AsyncAnthropic
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from app.core.config import Settings, get_settings
from app.core.errors import ConfigurationError, UpstreamError
from app.core.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class LLMServiceError(UpstreamError):
    """Raised when the model provider fails or returns an unusable response."""

    pass


@dataclass
class StructuredPrompt:
    """Provider-neutral request payload."""

    text: str
    image: Optional[bytes] = None
    image_mime_type: str = "image/jpeg"

    @property
    def image_base64(self) -> Optional[str]:
        if self.image is None:
            return None
        return base64.b64encode(self.image).decode("ascii")


class StructuredLLMService(ABC):
    """Capability: payload + declared output shape -> value of that shape."""

    provider: str = "abstract"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def generate(
        self,
        prompt: StructuredPrompt,
        output_model: Type[ModelT],
        model: str,
        max_tokens: int
    ) -> ModelT:
        """
        Run one schema-constrained model invocation.

        Args:
            prompt: Text and optional image to send
            output_model: Pydantic model the response must conform to
            model: Provider model name
            max_tokens: Response token limit

        Returns:
            Validated instance of ``output_model``

        Raises:
            LLMServiceError: If the call fails or the response does not validate
        """
        logger.info(
            "llm_request_started",
            provider=self.provider,
            model=model,
            output=output_model.__name__,
            has_image=prompt.image is not None
        )

        try:
            payload = await self._invoke(prompt, output_model, model, max_tokens)
            result = output_model.model_validate(payload)
        except (OpenAIError, AnthropicError) as e:
            logger.error("llm_request_failed", provider=self.provider, model=model, error=str(e))
            raise LLMServiceError(str(e)) from e
        except (ValidationError, ValueError) as e:
            logger.error(
                "llm_response_invalid",
                provider=self.provider,
                model=model,
                output=output_model.__name__,
                error=str(e)
            )
            raise LLMServiceError(f"Model response did not match {output_model.__name__}: {e}") from e

        logger.info("llm_request_completed", provider=self.provider, model=model)
        return result

    @abstractmethod
    async def _invoke(
        self,
        prompt: StructuredPrompt,
        output_model: Type[BaseModel],
        model: str,
        max_tokens: int
    ) -> Dict[str, Any]:
        """Call the provider and return the raw structured payload."""


class OpenAIStructuredService(StructuredLLMService):
    """OpenAI chat completions with a JSON-schema response format."""

    provider = "openai"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        super().__init__(settings)
        if client is None:
            if not self.settings.openai_api_key:
                raise ConfigurationError("OpenAI API key is not configured")
            client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.llm_timeout
            )
        self.client = client

    async def _invoke(self, prompt, output_model, model, max_tokens):
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt.text}]
        if prompt.image is not None:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{prompt.image_mime_type};base64,{prompt.image_base64}"},
            })

        completion = await self.client.chat.completions.create(
            model=model,
            temperature=self.settings.llm_temperature,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": content}],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": output_model.__name__,
                    "schema": output_model.model_json_schema(),
                    "strict": False,
                },
            },
        )

        message = completion.choices[0].message
        if getattr(message, "refusal", None):
            raise ValueError(f"Model refused: {message.refusal}")
        if not message.content:
            raise ValueError("Model returned an empty response")
        return json.loads(message.content)


class AnthropicStructuredService(StructuredLLMService):
    """Anthropic messages API forced onto a single schema-bearing tool."""

    provider = "anthropic"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncAnthropic] = None):
        super().__init__(settings)
        if client is None:
            if not self.settings.anthropic_api_key:
                raise ConfigurationError("Anthropic API key is not configured")
            client = AsyncAnthropic(
                api_key=self.settings.anthropic_api_key,
                timeout=self.settings.llm_timeout
            )
        self.client = client

    async def _invoke(self, prompt, output_model, model, max_tokens):
        tool_name = f"record_{output_model.__name__.lower()}"
        content: List[Dict[str, Any]] = []
        if prompt.image is not None:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": prompt.image_mime_type,
                    "data": prompt.image_base64,
                },
            })
        content.append({"type": "text", "text": prompt.text})

        message = await self.client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=self.settings.llm_temperature,
            tools=[{
                "name": tool_name,
                "description": f"Record the result as a {output_model.__name__}.",
                "input_schema": output_model.model_json_schema(),
            }],
            tool_choice={"type": "tool", "name": tool_name},
            messages=[{"role": "user", "content": content}],
        )

        for block in message.content:
            if block.type == "tool_use" and block.name == tool_name:
                return block.input
        raise ValueError("Model did not return a structured result")


def create_llm_service(settings: Optional[Settings] = None) -> StructuredLLMService:
    """
    Build the structured LLM service for the configured provider.

    Raises:
        ConfigurationError: If the provider's API key is missing
    """
    settings = settings or get_settings()
    if settings.llm_provider == "anthropic":
        return AnthropicStructuredService(settings)
    return OpenAIStructuredService(settings)
