"""Core data models for advisory-router."""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

# Allowed values for the string-typed fields below.
DOMAINS = ("tax", "audit", "financial_reporting", "compliance", "general")
COMPLEXITY_LEVELS = ("basic", "intermediate", "advanced", "expert")
IMPORTANCE_LEVELS = ("critical", "high", "medium", "low")
APPROACHES = ("clarify", "answer", "partial_answer_then_clarify")
RESPONSE_TYPES = (
    "document", "visualization", "export", "calculation", "research", "analysis", "general",
)


@dataclass(frozen=True)
class DocumentHint:
    """Optional hint passed to the classifier when a file is attached."""
    has_document: bool = False
    document_type: str | None = None


@dataclass(frozen=True)
class QueryClassification:
    """Structured summary of a query. Immutable once built."""
    domain: str = "general"
    sub_domain: str | None = None
    jurisdiction: tuple[str, ...] = ()
    complexity: str = "basic"
    requires_document_analysis: bool = False
    requires_research: bool = False
    requires_real_time_data: bool = False
    requires_deep_reasoning: bool = False
    requires_calculation: bool = False
    keywords: tuple[str, ...] = ()
    confidence: float = 0.0


@dataclass
class RoutingDecision:
    """Chosen model, provider and fallback order for one query."""
    primary_model: str
    preferred_provider: str
    fallback_providers: list[str] = field(default_factory=list)
    solvers_needed: list[str] = field(default_factory=list)
    reasoning: str = ""
    confidence: float = 0.0
    estimated_tokens: int = 0


@dataclass
class ClarificationContext:
    """Case facts accumulated from the conversation so far."""
    jurisdiction: str | None = None
    tax_year: str | None = None
    business_type: str | None = None
    filing_status: str | None = None
    entity_type: str | None = None
    accounting_method: str | None = None


@dataclass
class MissingContextItem:
    category: str
    importance: str  # "critical", "high", "medium", "low"
    reason: str
    suggested_question: str


@dataclass
class ClarificationAnalysis:
    needs_clarification: bool
    confidence: str  # "low", "medium", "high"
    missing_context: list[MissingContextItem] = field(default_factory=list)
    ambiguities: list[str] = field(default_factory=list)
    detected_nuances: list[str] = field(default_factory=list)
    conversation_context: ClarificationContext = field(default_factory=ClarificationContext)
    recommended_approach: str = "answer"


@dataclass
class Attachment:
    """A file uploaded alongside the query."""
    buffer: bytes
    filename: str
    mime_type: str
    document_type: str | None = None


@dataclass
class ExtractionResult:
    """What the document extraction collaborator returns."""
    success: bool
    extracted_text: str = ""
    error: str | None = None


@dataclass
class ResponseMetadata:
    """UI routing signals attached to every result."""
    response_type: str = "general"
    show_in_output_pane: bool = False
    has_document: bool = False
    has_visualization: bool = False
    has_calculation: bool = False
    has_export: bool = False
    has_research: bool = False
    chat_mode: str = "standard"
    provider_used: str | None = None
    attempts: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class OrchestrationResult:
    response: str
    model_used: str
    routing_decision: RoutingDecision
    classification: QueryClassification
    metadata: ResponseMetadata
    calculation_results: dict[str, Any] | None = None
    clarification_analysis: ClarificationAnalysis | None = None
    needs_clarification: bool = False
    tokens_used: int = 0
    processing_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Plain dict of every intermediate artifact, for audit logging."""
        return asdict(self)


@dataclass
class ProviderHealthMetrics:
    """Reliability record for one provider."""
    provider_name: str
    health_score: float = 100.0
    consecutive_failures: int = 0
    last_success_at: float | None = None
    last_failure_at: float | None = None
    rate_limit_until: float | None = None
    success_count: int = 0
    error_count: int = 0
    last_error_code: str | None = None
    rate_limit_hits: int = 0  # consecutive rate-limit failures, drives backoff


class ProviderErrorCode(Enum):
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    TIMEOUT = "timeout"
    GENERIC = "generic"


class ProviderError(Exception):
    """Typed failure raised by provider adapters.

    The code is assigned where the adapter talks to its SDK, so nothing
    upstream needs to inspect error messages.
    """

    def __init__(self, message: str, provider: str, code: ProviderErrorCode = ProviderErrorCode.GENERIC):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.code = code

    def __repr__(self) -> str:
        return f"ProviderError(provider={self.provider!r}, code={self.code.value!r}, message={self.message!r})"

    @classmethod
    def from_exception(cls, provider: str, exc: BaseException) -> "ProviderError":
        """Wrap a foreign exception, choosing the code from its type or HTTP status."""
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, TimeoutError):
            return cls(f"request timed out: {exc}", provider, ProviderErrorCode.TIMEOUT)

        status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
        if status == 429:
            code = ProviderErrorCode.RATE_LIMIT
        elif status in (401, 403):
            code = ProviderErrorCode.AUTH
        elif status in (408, 504, 522):
            code = ProviderErrorCode.TIMEOUT
        else:
            code = ProviderErrorCode.GENERIC
        return cls(str(exc) or type(exc).__name__, provider, code)


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    model_used: str = ""

    @property
    def tokens_used(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMProvider(ABC):
    """Abstract base class for provider adapters."""

    default_model: str = ""

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 8000,
        temperature: float = 0.7,
        attachment: Attachment | None = None,
    ) -> LLMResponse:
        """Send a chat completion request.

        Implementations raise ProviderError with an explicit code on failure.
        """
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__
