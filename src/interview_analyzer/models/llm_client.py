"""
LLM client for the analysis stages.

Every language-model call in the pipeline is a local `ollama run <model>`
subprocess executed in a worker thread. Callers ask for JSON and get back a
repaired, schema-validated payload or a `StageError`.
"""

import asyncio
import json
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from interview_analyzer.config import get_settings
from interview_analyzer.models.json_extract import extract_json
from interview_analyzer.models.usage import estimate_tokens, record_usage
from interview_analyzer.pipeline.errors import MalformedOutputError, StageError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"

JSON_ONLY = "Respond with a single valid JSON value and nothing else."

ModelT = TypeVar("ModelT", bound=BaseModel)


class Message(BaseModel):
    """One chat turn sent to the model."""

    role: str = Field(..., description="system, user or assistant")
    content: str = Field(..., description="Turn text")


class LLMResponse(BaseModel):
    """Completion returned by a client; `finish_reason == "error"` marks a failed call."""

    content: str = Field(..., description="Completion text")
    finish_reason: str = Field(default="stop", description="stop or error")
    usage: dict[str, int] = Field(default_factory=dict, description="Estimated prompt/completion tokens")
    model: str = Field(default="", description="Model that produced the completion")
    raw_response: dict[str, Any] = Field(default_factory=dict, description="Backend details, including any error")


class OllamaError(Exception):
    """The ollama subprocess could not produce a completion."""

    def __init__(self, message: str, return_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr


class LLMClientBase(ABC):
    """
    Model backend used by the analysis stages.

    Subclasses implement `chat`; JSON extraction and schema validation are
    shared so every backend fails the same way.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Produce one completion for `messages`.

        Implementations report failure with `finish_reason="error"` and an
        `"error"` entry in `raw_response` rather than raising.
        """
        ...

    async def chat_with_json(
        self,
        messages: list[Message],
        schema: dict[str, Any] | None = None,
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Ask for JSON and recover it from whatever the model returns.

        Args:
            messages: Prompt turns.
            schema: JSON schema the answer should follow, if any.
            temperature: Sampling temperature.
            **kwargs: Passed through to `chat`.

        Returns:
            The decoded object. A bare array comes back as {"items": [...]}.

        Raises:
            StageError: The model call failed.
            MalformedOutputError: Nothing JSON-like could be recovered.
        """
        instruction = JSON_ONLY
        if schema:
            instruction += f" The value must conform to this JSON schema: {json.dumps(schema)}"

        response = await self.chat(
            [Message(role="system", content=instruction), *messages],
            temperature,
            json_mode=True,
            **kwargs,
        )

        if response.finish_reason == "error":
            raise StageError("llm", f"model call failed: {response.raw_response.get('error', 'unknown error')}")
        if not response.content.strip():
            raise MalformedOutputError("Empty model response")

        parsed = extract_json(response.content)
        return {"items": parsed} if isinstance(parsed, list) else parsed

    async def chat_structured(
        self,
        messages: list[Message],
        response_model: type[ModelT],
        stage: str = "llm",
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> ModelT:
        """
        Ask for JSON matching `response_model` and validate it.

        Args:
            messages: Prompt turns.
            response_model: Pydantic model the payload must satisfy.
            stage: Stage name carried by any raised error.
            temperature: Sampling temperature.
            **kwargs: Passed through to `chat`.

        Returns:
            A validated `response_model` instance.

        Raises:
            StageError: The model call failed.
            MalformedOutputError: The payload was not JSON or did not validate.
        """
        try:
            payload = await self.chat_with_json(
                messages,
                schema=response_model.model_json_schema(),
                temperature=temperature,
                **kwargs,
            )
        except MalformedOutputError as e:
            raise MalformedOutputError(e.reason, raw=e.raw, stage=stage) from e
        except StageError as e:
            raise StageError(stage, e.reason) from e

        try:
            return response_model.model_validate(payload)
        except ValidationError as e:
            logger.debug(f"{stage} payload failed validation: {payload!r:.500}")
            raise MalformedOutputError(
                f"response did not match {response_model.__name__}: {e.error_count()} errors",
                raw=json.dumps(payload)[:500],
                stage=stage,
            ) from e

    async def close(self) -> None:
        """Release backend resources; nothing to do by default."""
        return None


class LLMClient(LLMClientBase):
    """Runs the configured model through the local Ollama CLI."""

    def __init__(
        self,
        model: str | None = None,
        max_retries: int | None = None,
        timeout: int | None = None,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.llm_model_name or DEFAULT_OLLAMA_MODEL
        self._max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self._timeout = timeout or settings.llm_timeout
        logger.info(f"LLM client using Ollama model {self._model} (timeout {self._timeout}s)")

    @property
    def model(self) -> str:
        return self._model

    @staticmethod
    def render_prompt(messages: list[Message]) -> str:
        """Flatten chat turns into the tagged plain-text prompt `ollama run` reads on stdin."""
        turns = [f"[{m.role.upper()}]\n{m.content.strip()}\n" for m in messages]
        turns.append("[ASSISTANT]\n")
        return "\n".join(turns)

    def _invoke(self, prompt: str, json_mode: bool) -> str:
        """
        Call `ollama run`, retrying failed or timed-out attempts.

        Raises:
            OllamaError: The CLI is missing or every attempt failed.
        """
        cmd = ["ollama", "run", self._model, *(["--format", "json"] if json_mode else [])]
        failure = OllamaError("Ollama produced no completion")

        for attempt in range(1, self._max_retries + 2):
            try:
                completed = subprocess.run(cmd, input=prompt, capture_output=True, text=True, timeout=self._timeout)
            except FileNotFoundError as e:
                raise OllamaError("ollama executable not found on PATH; install it from https://ollama.com") from e
            except subprocess.TimeoutExpired:
                logger.warning(f"ollama attempt {attempt} timed out after {self._timeout}s")
                failure = OllamaError(f"Ollama timeout after {self._timeout}s")
                continue
            except OSError as e:
                logger.warning(f"ollama attempt {attempt} could not start: {e}")
                failure = OllamaError(str(e))
                continue

            if completed.returncode == 0:
                return completed.stdout.strip()

            stderr = completed.stderr.strip()
            logger.warning(f"ollama attempt {attempt} exited {completed.returncode}: {stderr or 'no stderr'}")
            failure = OllamaError(
                f"ollama exited with {completed.returncode}",
                return_code=completed.returncode,
                stderr=stderr,
            )

        raise failure

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Run one completion in a worker thread.

        `temperature` and `max_tokens` come from the Modelfile when using the
        CLI; `json_mode=True` adds `--format json`.
        """
        prompt = self.render_prompt(messages)

        try:
            text = await asyncio.to_thread(self._invoke, prompt, bool(kwargs.get("json_mode", False)))
        except OllamaError as e:
            logger.error(f"LLM call failed: {e}")
            record_usage(calls=1)
            return LLMResponse(content="", finish_reason="error", model=self._model, raw_response={"error": str(e)})

        usage = {"prompt_tokens": estimate_tokens(prompt), "completion_tokens": estimate_tokens(text)}
        record_usage(calls=1, tokens=sum(usage.values()))
        logger.debug(f"LLM completion: {len(text)} chars, ~{usage['completion_tokens']} tokens")
        return LLMResponse(content=text, usage=usage, model=self._model)
