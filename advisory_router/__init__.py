"""advisory-router: advisory query routing with clarification, solvers, and health-scored failover."""

from advisory_router.models import (
    Attachment,
    ClarificationAnalysis,
    ExtractionResult,
    LLMProvider,
    LLMResponse,
    OrchestrationResult,
    ProviderError,
    ProviderErrorCode,
    QueryClassification,
    RoutingDecision,
)
from advisory_router.clarification import ClarificationEngine
from advisory_router.failover import FailoverChain
from advisory_router.health import ProviderHealthMonitor, get_health_monitor
from advisory_router.heuristics import classify_query
from advisory_router.policy import route_query
from advisory_router.registry import ProviderRegistry
from advisory_router.router import AdvisoryRouter

__all__ = [
    "AdvisoryRouter",
    "Attachment",
    "ClarificationAnalysis",
    "ClarificationEngine",
    "ExtractionResult",
    "FailoverChain",
    "LLMProvider",
    "LLMResponse",
    "OrchestrationResult",
    "ProviderError",
    "ProviderErrorCode",
    "ProviderHealthMonitor",
    "ProviderRegistry",
    "QueryClassification",
    "RoutingDecision",
    "classify_query",
    "get_health_monitor",
    "route_query",
]
