"""LLM client for the AI gateway / cloud providers.

Provides a unified interface for LLM interactions over the
OpenAI-compatible chat completions API.

Supported providers:
- gateway: Hosted AI gateway (OpenAI-compatible, default)
- openai: OpenAI API
- lmstudio: Local LM Studio server (development)
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Literal

import openai
import structlog
from openai import OpenAI

from tailoredu.config.app_config import load_app_config
from tailoredu.utils.text_utils import strip_think

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

Provider = Literal["gateway", "openai", "lmstudio"]

# Provider capabilities
PROVIDER_CAPABILITIES_DEFAULTS: dict[str, dict[str, bool]] = {
    "gateway": {
        "supports_json_object": True,
        "supports_tools": True,
    },
    "openai": {
        "supports_json_object": True,
        "supports_tools": True,
    },
    "lmstudio": {
        "supports_json_object": False,
        "supports_tools": False,
    },
}

JSON_REPAIR_PROMPT = """Fix the following text and return ONLY valid JSON:
<<<
{invalid_output}
>>>

Respond ONLY with the corrected JSON, no explanations and no markdown."""

RATE_LIMIT_MESSAGE = "Rate limits exceeded, please try again later."
PAYMENT_REQUIRED_MESSAGE = "Payment required, please add funds to your AI workspace."


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class LLMConfig:
    """Configuration for LLM client."""

    provider: str = "gateway"
    base_url: str = "https://ai.gateway.lovable.dev/v1"
    model: str = "google/gemini-2.5-flash"
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: int = 120
    api_key: str | None = None
    supports_json_object: bool | None = None

    @classmethod
    def from_app_config(cls, provider: str | None = None) -> LLMConfig:
        """Build configuration from the application config.

        Args:
            provider: Provider name; defaults to ai.default_provider
        """
        app_config = load_app_config()
        provider = provider or app_config.ai.default_provider

        pconfig = app_config.providers.get(provider)
        if pconfig is None:
            logger.warning("provider_not_configured", provider=provider)
            return cls(provider=provider)

        return cls(
            provider=provider,
            base_url=pconfig.base_url or cls.base_url,
            model=pconfig.default_model,
            api_key=pconfig.get_api_key(),
        )


@dataclass
class Message:
    """A chat message."""

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for API call."""
        return {"role": self.role, "content": self.content}


@dataclass
class ToolSpec:
    """A function tool used to request structured output."""

    name: str
    description: str
    parameters: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class LLMResponse:
    """Response from LLM."""

    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: int = 0
    tool_arguments: str | None = None

    @property
    def total_tokens(self) -> int:
        """Get total token count."""
        return self.usage.get("total_tokens", 0)


class LLMError(Exception):
    """Error during LLM interaction."""

    status_code = 500


class LLMConnectionError(LLMError):
    """Error connecting to LLM server."""

    pass


class LLMResponseError(LLMError):
    """Error in LLM response."""

    pass


class LLMRateLimitError(LLMError):
    """Upstream provider rejected the call with HTTP 429."""

    status_code = 429

    def __init__(self, message: str = RATE_LIMIT_MESSAGE):
        super().__init__(message)


class LLMPaymentRequiredError(LLMError):
    """Upstream provider quota exhausted (HTTP 402)."""

    status_code = 402

    def __init__(self, message: str = PAYMENT_REQUIRED_MESSAGE):
        super().__init__(message)


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """Unified client for LLM interactions.

    Supports the AI gateway, OpenAI and LM Studio via the OpenAI-compatible API.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        model: str | None = None,
    ):
        """Initialize LLM client.

        Args:
            config: LLM configuration (built from app config if not provided)
            model: Override model from config
        """
        if config is None:
            config = LLMConfig.from_app_config()

        self.config = config

        if model is not None:
            self.config.model = model

        # Upstream failures surface to the caller; the SDK must not retry
        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key or "not-needed",
            timeout=self.config.timeout,
            max_retries=0,
        )

        logger.info(
            "llm_client_initialized",
            provider=self.config.provider,
            model=self.config.model,
            base_url=self.config.base_url,
        )

    def _capability(self, name: str) -> bool:
        caps = PROVIDER_CAPABILITIES_DEFAULTS.get(self.config.provider, {})
        return caps.get(name, False)

    def _supports_json_object(self) -> bool:
        """Check if current provider supports response_format json_object."""
        if self.config.supports_json_object is not None:
            return self.config.supports_json_object
        return self._capability("supports_json_object")

    def _create(self, request_kwargs: dict[str, Any]) -> Any:
        """Call the completions endpoint, mapping upstream failures."""
        try:
            return self._client.chat.completions.create(**request_kwargs)
        except openai.RateLimitError as e:
            logger.error("llm_rate_limited", provider=self.config.provider)
            raise LLMRateLimitError() from e
        except openai.APIStatusError as e:
            if e.status_code == 402:
                logger.error("llm_payment_required", provider=self.config.provider)
                raise LLMPaymentRequiredError() from e
            logger.error(
                "llm_gateway_error",
                provider=self.config.provider,
                status=e.status_code,
            )
            raise LLMError(f"AI gateway error: {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise LLMConnectionError(
                f"Could not connect to {self.config.provider} at {self.config.base_url}: {e}"
            ) from e
        except openai.OpenAIError as e:
            raise LLMError(f"LLM call failed: {e}") from e

    def chat(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
        tool: ToolSpec | None = None,
    ) -> LLMResponse:
        """Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Override default temperature
            max_tokens: Override default max tokens
            json_mode: Request JSON response format (only if provider supports it)
            tool: Force a single function tool call for structured output

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMRateLimitError: Upstream returned 429
            LLMPaymentRequiredError: Upstream returned 402
            LLMConnectionError: If cannot connect to server
            LLMResponseError: If response is invalid
        """
        if temperature is None:
            temperature = self.config.temperature
        if max_tokens is None:
            max_tokens = self.config.max_tokens

        request_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if tool is not None and self._capability("supports_tools"):
            request_kwargs["tools"] = [tool.to_dict()]
            request_kwargs["tool_choice"] = {
                "type": "function",
                "function": {"name": tool.name},
            }
        elif json_mode and self._supports_json_object():
            request_kwargs["response_format"] = {"type": "json_object"}

        start_time = time.time()
        response = self._create(request_kwargs)
        latency_ms = int((time.time() - start_time) * 1000)

        if not response.choices:
            raise LLMResponseError("Empty response from LLM")

        message = response.choices[0].message
        content = message.content or ""

        tool_arguments = None
        tool_calls = getattr(message, "tool_calls", None) or []
        if tool_calls:
            tool_arguments = tool_calls[0].function.arguments

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.debug(
            "llm_response",
            provider=self.config.provider,
            model=response.model,
            tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
            tool_call=tool_arguments is not None,
        )

        return LLMResponse(
            content=content,
            model=response.model,
            provider=self.config.provider,
            usage=usage,
            latency_ms=latency_ms,
            tool_arguments=tool_arguments,
        )

    def _try_parse_json(self, content: str) -> dict[str, Any] | None:
        """Try to parse JSON from content, with multiple extraction strategies.

        Tries:
        1. Direct parse
        2. Extract from ```json ... ``` blocks
        3. Extract first {...} object

        Returns parsed dict or None if all strategies fail.
        """
        content = strip_think(content)

        try:
            parsed = json.loads(content)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
        if json_match:
            try:
                return json.loads(json_match.group(1).strip())
            except json.JSONDecodeError:
                pass

        start = content.find("{")
        end = content.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                return json.loads(content[start:end])
            except json.JSONDecodeError:
                pass

        return None

    def chat_json(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        max_retries: int = 1,
    ) -> dict[str, Any]:
        """Send chat request expecting JSON response.

        Uses robust parsing with one repair round-trip on failure.

        Raises:
            LLMResponseError: If response is not valid JSON after retries
        """
        response = self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )

        parsed = self._try_parse_json(response.content)
        if parsed is not None:
            return parsed

        if max_retries > 0:
            logger.warning(
                "json_parse_failed_retrying",
                content=response.content[:100],
                provider=self.config.provider,
            )

            repair_prompt = JSON_REPAIR_PROMPT.format(
                invalid_output=response.content[:1000]
            )
            retry_messages = messages + [Message(role="user", content=repair_prompt)]

            retry_response = self.chat(
                retry_messages,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=True,
            )

            parsed = self._try_parse_json(retry_response.content)
            if parsed is not None:
                logger.info("json_parse_recovered_after_retry")
                return parsed

        raise LLMResponseError(
            f"Could not obtain valid JSON: {response.content[:200]}..."
        )

    def chat_tool(
        self,
        messages: list[Message],
        tool: ToolSpec,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Request structured output through a single forced tool call.

        Parses the arguments of the one expected tool call. Providers
        without tool support answer in the message body, which is parsed
        as JSON instead.

        Raises:
            LLMResponseError: If no parseable structured result came back
        """
        response = self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
            tool=tool,
        )

        if response.tool_arguments is not None:
            try:
                arguments = json.loads(response.tool_arguments)
            except json.JSONDecodeError as e:
                raise LLMResponseError(
                    f"Invalid arguments in {tool.name} tool call"
                ) from e
            if not isinstance(arguments, dict):
                raise LLMResponseError(f"Invalid arguments in {tool.name} tool call")
            return arguments

        parsed = self._try_parse_json(response.content)
        if parsed is None:
            raise LLMResponseError("Invalid AI response format")
        return parsed

    def simple_tool(
        self,
        system_prompt: str,
        user_message: str,
        tool: ToolSpec,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        """Single-turn structured output with system prompt and user message."""
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]
        return self.chat_tool(messages, tool, temperature=temperature)
