"""Generative text service client and its fault taxonomy.

Only the outcome classes the engine branches on are modelled:

- RATE_LIMITED, TIMEOUT, UNAVAILABLE: transient, worth another attempt
- OTHER: anything else (bad request, auth, content policy); never retried

The client returns ``Result[Completion, GenerationError]`` and does not raise
for service faults. Cancellation still propagates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeAlias

import openai
from result import Err, Ok, Result

from claimloop.core.logging import get_logger
from claimloop.core.models.config import GenerationConfig

logger = get_logger('generation')


class ServiceFault(str, Enum):
    RATE_LIMITED = 'RATE_LIMITED'
    TIMEOUT = 'TIMEOUT'
    UNAVAILABLE = 'UNAVAILABLE'
    OTHER = 'OTHER'

    @property
    def retryable(self) -> bool:
        return self is not ServiceFault.OTHER


@dataclass(slots=True, frozen=True)
class GenerationError:
    """Error payload carried inside Err(...) for generative calls.

    Fields:
        fault: outcome class of the failed call
        message: human-readable description
        attempts: how many calls were made before giving up
        exception: the original cause (if any)
    """

    fault: ServiceFault
    message: str
    attempts: int = 1
    exception: BaseException | None = None

    @property
    def retryable(self) -> bool:
        return self.fault.retryable


@dataclass(slots=True, frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    system: str | None = None
    temperature: float | None = None
    json_mode: bool = False
    images: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class Completion:
    text: str
    model: str
    usage: Usage = field(default_factory=Usage)


GenerationResult: TypeAlias = Result[Completion, GenerationError]


class GenerativeClient(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationResult: ...


def classify_exception(exc: BaseException) -> ServiceFault:
    """Map an OpenAI SDK exception onto a ServiceFault."""
    match exc:
        case openai.RateLimitError():
            return ServiceFault.RATE_LIMITED
        # APITimeoutError subclasses APIConnectionError; match it first
        case openai.APITimeoutError() | TimeoutError():
            return ServiceFault.TIMEOUT
        case openai.APIConnectionError() | openai.InternalServerError():
            return ServiceFault.UNAVAILABLE
        case openai.APIStatusError() as status_exc if status_exc.status_code >= 500:
            return ServiceFault.UNAVAILABLE
        case _:
            return ServiceFault.OTHER


def _build_messages(request: GenerationRequest) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if request.system:
        messages.append({'role': 'system', 'content': request.system})
    if request.images:
        content: list[dict[str, Any]] = [{'type': 'text', 'text': request.prompt}]
        content.extend(
            {'type': 'image_url', 'image_url': {'url': url}} for url in request.images
        )
        messages.append({'role': 'user', 'content': content})
    else:
        messages.append({'role': 'user', 'content': request.prompt})
    return messages


class OpenAIGenerativeClient:
    """
    Chat-completions client over ``openai.AsyncOpenAI``.

    SDK retries are disabled; ``call_with_retry`` is the only retry layer.
    """

    def __init__(
        self,
        config: GenerationConfig,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.config = config
        self._client = client or openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_s,
            max_retries=0,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        kwargs: dict[str, Any] = {
            'model': request.model,
            'messages': _build_messages(request),
        }
        if request.temperature is not None:
            kwargs['temperature'] = request.temperature
        if request.json_mode:
            kwargs['response_format'] = {'type': 'json_object'}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            fault = classify_exception(exc)
            logger.debug(f'{request.model} call failed ({fault.value}): {exc}')
            return Err(GenerationError(fault=fault, message=str(exc), exception=exc))

        text = ''
        if response.choices:
            text = response.choices[0].message.content or ''
        usage = Usage()
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        return Ok(Completion(text=text, model=response.model or request.model, usage=usage))

    async def close(self) -> None:
        await self._client.close()
