"""
Adapter over the external text-generation capability.

The capability is opaque: prompt in, text out, no guarantee of correctness or
determinism. Two capabilities are provided, the Anthropic Messages API and any
OpenAI-compatible ``/v1/chat/completions`` endpoint.
"""

import json
import logging
import re
import time
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import anthropic
import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from speechwriter_backend.config import ANTHROPIC_API_KEY, API_LOG_PREVIEW_CHARS, OPENAI_API_KEY
from speechwriter_backend.errors import GenerationError
from speechwriter_backend.services.llm_config import merge_llm_config
from speechwriter_backend.services.prompt_manager import PromptManager, get_prompt_manager

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)


def _preview_text(value: Any, limit: int = API_LOG_PREVIEW_CHARS) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


class GenerationRequest(BaseModel):
    system_prompt: str
    user_prompt: str
    temperature: float = 0.5
    max_tokens: int = 2000
    model: Optional[str] = None


class GenerationResult(BaseModel):
    raw_text: str
    latency_ms: int
    token_usage: Dict[str, int] = {}
    model: Optional[str] = None


class AnthropicCapability:
    def __init__(self, api_key: Optional[str] = None, default_model: Optional[str] = None):
        api_key = api_key or ANTHROPIC_API_KEY
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY not found in environment")
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.default_model = default_model

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        model = request.model or self.default_model
        started = time.perf_counter()
        response = await self.client.messages.create(
            model=model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            system=request.system_prompt,
            messages=[{"role": "user", "content": request.user_prompt}],
        )
        latency_ms = int((time.perf_counter() - started) * 1000)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return GenerationResult(
            raw_text=text,
            latency_ms=latency_ms,
            token_usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            model=model,
        )


class OpenAICompatibleCapability:
    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 default_model: Optional[str] = None, timeout_seconds: float = 120,
                 json_mode: bool = True):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key if api_key is not None else OPENAI_API_KEY
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.json_mode = json_mode

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        model = request.model or self.default_model
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        url = f"{self.base_url}/v1/chat/completions"

        started = time.perf_counter()
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        latency_ms = int((time.perf_counter() - started) * 1000)

        usage = data.get("usage") or {}
        return GenerationResult(
            raw_text=data["choices"][0]["message"]["content"] or "",
            latency_ms=latency_ms,
            token_usage={
                "input_tokens": int(usage.get("prompt_tokens", 0)),
                "output_tokens": int(usage.get("completion_tokens", 0)),
            },
            model=model,
        )


def parse_structured(raw_text: Optional[str]) -> Optional[Any]:
    """
    Strict JSON parse, then the first fenced ```json block. Returns ``None``
    when neither yields JSON; callers decide whether that is fatal.
    """
    raw = str(raw_text or "").strip()
    if not raw:
        return None

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    for fenced in _FENCED_JSON_RE.findall(raw):
        try:
            return json.loads(fenced.strip())
        except json.JSONDecodeError:
            continue

    return None


class GenerationAdapter:
    """Calls the capability, times it and validates structured output."""

    def __init__(self, capability, prompt_manager: Optional[PromptManager] = None,
                 default_model: Optional[str] = None):
        self.capability = capability
        self.prompt_manager = prompt_manager or get_prompt_manager()
        self.default_model = default_model

    async def generate(self, system_prompt: str, user_prompt: str, temperature: float = 0.5,
                       max_tokens: int = 2000, model: Optional[str] = None) -> GenerationResult:
        request = GenerationRequest(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            model=model or self.default_model,
        )
        logger.info(
            "[GENERATION] request model=%s temperature=%s max_tokens=%s prompt=%s",
            request.model, temperature, max_tokens, _preview_text(user_prompt),
        )
        try:
            result = await self.capability.generate(request)
        except GenerationError:
            raise
        except Exception as exc:
            logger.error("[GENERATION] capability call failed: %s", exc)
            raise GenerationError(f"Generation capability failed: {exc}") from exc

        logger.info(
            "[GENERATION] response latency_ms=%s usage=%s preview=%s",
            result.latency_ms, result.token_usage, _preview_text(result.raw_text),
        )
        return result

    @staticmethod
    def parse_structured(raw_text: Optional[str]) -> Optional[Any]:
        return parse_structured(raw_text)

    async def generate_structured(self, prompt_name: str, variables: Dict[str, Any],
                                  output_model: Type[ModelT]) -> Tuple[ModelT, GenerationResult]:
        """
        Render a named prompt, generate, parse and validate against
        ``output_model``. Unparsable or invalid output raises GenerationError.
        """
        metadata = self.prompt_manager.get_prompt_metadata(prompt_name)
        result = await self.generate(
            system_prompt=self.prompt_manager.get_system_prompt(prompt_name),
            user_prompt=self.prompt_manager.render_prompt(prompt_name, variables),
            temperature=metadata["temperature"],
            max_tokens=metadata["max_tokens"],
            model=metadata.get("model"),
        )

        parsed = self.parse_structured(result.raw_text)
        if parsed is None:
            raise GenerationError(f"{prompt_name}: no structured result in response", raw_text=result.raw_text)

        try:
            return output_model.model_validate(parsed), result
        except PydanticValidationError as exc:
            raise GenerationError(
                f"{prompt_name}: response failed validation: {exc.error_count()} errors",
                raw_text=result.raw_text,
            ) from exc


def build_generation_adapter(config: Optional[Dict[str, Any]] = None) -> GenerationAdapter:
    """Create the adapter for the configured provider."""
    resolved = merge_llm_config(config)
    if resolved.get("provider") == "openai":
        capability = OpenAICompatibleCapability(
            base_url=resolved.get("base_url", ""),
            default_model=resolved.get("chat_model"),
            timeout_seconds=float(resolved.get("timeout_seconds", 120)),
            json_mode=bool(resolved.get("json_mode", True)),
        )
    else:
        capability = AnthropicCapability(default_model=resolved.get("chat_model"))
    return GenerationAdapter(capability, default_model=resolved.get("chat_model"))
