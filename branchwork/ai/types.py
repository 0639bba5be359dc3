"""
Contract of the structured-generation capability.

Anything that can turn a list of chat messages plus a pydantic schema into a
validated instance of that schema satisfies ``StructuredGenerator``. The
summarization service and work extraction depend only on this protocol.
"""

from __future__ import annotations

from typing import Any, Generic, List, Literal, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ChatMessage(BaseModel):
    """One message of a generation request."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class StructuredGenerationResult(BaseModel, Generic[SchemaT]):
    """Validated output of a structured generation call."""

    data: SchemaT
    raw_text: str = ""
    model: str = ""
    provider: str = ""
    usage: Optional[TokenUsage] = None


class StructuredGenerator(Protocol):
    """Black-box structured generation capability."""

    name: str

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
        ...


# =============================================================================
# Errors
# =============================================================================


class AIProviderError(Exception):
    """Base error of the AI capability."""

    def __init__(
        self,
        message: str,
        provider: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.provider = provider
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code or "AI_PROVIDER_ERROR",
            "provider": self.provider,
            "message": self.message,
        }


class ProviderUnavailableError(AIProviderError):
    """No provider is configured."""

    def __init__(self, message: str = "No AI provider configured"):
        super().__init__(message, provider="none", code="NO_PROVIDER")


class GenerationError(AIProviderError):
    """The provider call failed (transport error or non-success response)."""


class StructuredOutputError(AIProviderError):
    """The provider kept answering with output that fails schema validation."""

    def __init__(
        self,
        message: str,
        provider: str,
        raw_output: str,
        validation_errors: Optional[List[str]] = None,
    ):
        super().__init__(message, provider, code="STRUCTURED_OUTPUT_ERROR")
        self.raw_output = raw_output
        self.validation_errors = list(validation_errors or [])
