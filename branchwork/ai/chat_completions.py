"""
Structured generation over an OpenAI-compatible ``/chat/completions`` API.

OpenAI, xAI and Ollama expose the same endpoint shape; only the base URL,
the API key and the default model differ, so one adapter serves all three.

Structured output is obtained with JSON mode plus a system message that
embeds the pydantic JSON schema. Answers that fail validation are sent back
to the model together with the validation errors, up to ``max_retries``
attempts in total.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import ValidationError

from .types import (
    ChatMessage,
    GenerationError,
    SchemaT,
    StructuredGenerationResult,
    StructuredOutputError,
    TokenUsage,
)

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_SPAN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def extract_json(text: str) -> str:
    """Pull the JSON payload out of a model answer.

    Prefers a fenced code block, then the outermost object/array span,
    then the stripped text itself.
    """
    match = _CODE_BLOCK.search(text)
    if match:
        return match.group(1).strip()

    match = _JSON_SPAN.search(text)
    if match:
        return match.group(1)

    return text.strip()


def build_json_system_message(
    schema: Type[SchemaT],
    schema_name: Optional[str] = None,
    schema_description: Optional[str] = None,
) -> str:
    """Instruction block asking for JSON that conforms to ``schema``."""
    message = "You must respond with valid JSON only. No additional text or explanation."
    if schema_name:
        message += f"\n\nOutput type: {schema_name}"
    if schema_description:
        message += f"\nDescription: {schema_description}"

    json_schema = json.dumps(schema.model_json_schema(), indent=2)
    message += f"\n\nThe JSON must conform to this schema:\n```json\n{json_schema}\n```"
    return message


def _validation_messages(error: Exception) -> List[str]:
    if isinstance(error, ValidationError):
        return [
            f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}"
            for e in error.errors()
        ]
    return [str(error)]


class ChatCompletionsGenerator:
    """``StructuredGenerator`` backed by an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        name: str,
        base_url: str,
        default_model: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        default_temperature: float = 0.7,
        max_tokens: int = 4096,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.default_temperature = default_temperature
        self.max_tokens = max_tokens
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _complete(
        self,
        client: httpx.AsyncClient,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
    ) -> Dict[str, Any]:
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise GenerationError(
                f"{self.name} request failed: {e}", self.name, code="TRANSPORT_ERROR"
            ) from e

        if response.status_code >= 400:
            raise GenerationError(
                f"{self.name} API error {response.status_code}: {response.text[:500]}",
                self.name,
                code="API_ERROR",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError(
                f"{self.name} returned a non-JSON response", self.name, code="API_ERROR"
            ) from e

    async def generate_structured(
        self,
        messages: List[ChatMessage],
        schema: Type[SchemaT],
        *,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        schema_name: Optional[str] = None,
        schema_description: Optional[str] = None,
    ) -> StructuredGenerationResult[SchemaT]:
        """Generate an instance of ``schema`` from ``messages``."""
        instruction = build_json_system_message(schema, schema_name, schema_description)
        conversation = [m.model_dump() for m in messages]

        # Merge the JSON instruction into the first system message, or prepend one
        for message in conversation:
            if message["role"] == "system":
                message["content"] = f"{message['content']}\n\n{instruction}"
                break
        else:
            conversation.insert(0, {"role": "system", "content": instruction})

        model = model or self.default_model
        temperature = self.default_temperature if temperature is None else temperature

        raw_text = ""
        errors: List[str] = []
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(self.max_retries):
                body = await self._complete(client, conversation, model, temperature)
                try:
                    raw_text = body["choices"][0]["message"]["content"] or ""
                except (KeyError, IndexError, TypeError) as e:
                    raise GenerationError(
                        f"{self.name} response has no message content",
                        self.name,
                        code="API_ERROR",
                    ) from e

                try:
                    data = schema.model_validate(json.loads(extract_json(raw_text)))
                except (ValueError, ValidationError) as e:
                    errors = _validation_messages(e)
                    logger.warning(
                        f"{self.name} structured output invalid "
                        f"(attempt {attempt + 1}/{self.max_retries}): {errors}"
                    )
                    conversation.append({"role": "assistant", "content": raw_text})
                    conversation.append(
                        {
                            "role": "user",
                            "content": "The JSON you provided was invalid. Validation errors:\n"
                            + "\n".join(f"- {err}" for err in errors)
                            + "\n\nPlease provide a corrected JSON response.",
                        }
                    )
                    continue

                usage = body.get("usage")
                return StructuredGenerationResult[schema](
                    data=data,
                    raw_text=raw_text,
                    model=body.get("model", model),
                    provider=self.name,
                    usage=TokenUsage(**usage) if usage else None,
                )

        raise StructuredOutputError(
            f"Failed to generate valid structured output after {self.max_retries} attempts",
            self.name,
            raw_output=raw_text,
            validation_errors=errors,
        )
