"""LLM service type definitions."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, ValidationError, model_validator

from sparq_ai.core.exceptions import ConfigurationError, ProviderFailure


class TaskKind(str, Enum):
    """Purpose of a model request; the key of the task-to-model map."""

    CREATIVE_LONGFORM = "creative_longform"  # Connection Quests teaching content
    STRUCTURED_GENERATION = "structured_generation"  # Daily questions, short guidance
    CLASSIFICATION = "classification"  # Safety, tone, tags
    REASONING_SAFETY = "reasoning_safety"  # High-stakes checks, sensitive flows


class MessageRole(str, Enum):
    """Roles the router sends to the transport."""

    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class ChatMessage:
    """A single chat message."""

    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to the OpenAI wire format."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ModelMapping:
    """Ordered model preference for one task: primary first, then fallbacks."""

    primary: str
    fallback: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.primary or not self.primary.strip():
            raise ConfigurationError("Model mapping requires a primary model", field="primary")
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "fallback", tuple(self.fallback))
        if self.primary in self.fallback:
            raise ConfigurationError(
                f"Primary model '{self.primary}' is repeated in its fallback list",
                field="fallback",
            )
        if len(set(self.fallback)) != len(self.fallback):
            raise ConfigurationError(
                f"Duplicate fallback models: {list(self.fallback)}", field="fallback"
            )
        if any(not model or not model.strip() for model in self.fallback):
            raise ConfigurationError("Fallback model ids must be non-empty", field="fallback")

    @property
    def candidates(self) -> tuple[str, ...]:
        """Primary followed by fallbacks, in attempt order."""
        return (self.primary, *self.fallback)


class AskOptions(BaseModel):
    """Options for a single routed request."""

    task: TaskKind
    system: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)

    model_config = {"frozen": True}

    @model_validator(mode="wrap")
    @classmethod
    def _reject_as_configuration_error(cls, data, handler):
        try:
            return handler(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid ask options: {e}", field="options") from e


@dataclass
class AskResult:
    """Outcome of a successful routed request."""

    content: str
    model: str
    task: TaskKind
    attempts: int
    duration_ms: float
    failures: list[ProviderFailure] = field(default_factory=list)

    @property
    def fallback_occurred(self) -> bool:
        """True when the answer did not come from the primary model."""
        return self.attempts > 1
