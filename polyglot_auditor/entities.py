"""Cross-language data models: entities, references, contracts, graph, results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .models import ErrorRecord, ParameterInfo, PropertyInfo, Violation

ENTITY_TYPES = {
    "module", "function", "class", "interface", "struct",
    "schema", "endpoint", "service", "component",
}

REFERENCE_TYPES = {
    "calls", "implements", "extends", "imports",
    "api-call", "grpc-call", "graphql-query",
}

PROTOCOLS = {"http", "grpc", "graphql", "direct", "websocket"}

# Feature states reported on PolyglotAnalysisResult.feature_status
FEATURE_DISABLED = "disabled"
FEATURE_COMPLETED = "completed"
FEATURE_FAILED = "failed"
FEATURE_SKIPPED = "skipped"


# ===================================================================
# API contracts
# ===================================================================

@dataclass
class TypeSchema:
    type: str
    properties: Dict[str, "TypeSchema"] = field(default_factory=dict)
    items: Optional["TypeSchema"] = None
    required: List[str] = field(default_factory=list)
    ref: Optional[str] = None


@dataclass
class ErrorSchema:
    code: str
    message: str = ""
    http_status: Optional[int] = None


@dataclass
class AuthenticationSpec:
    type: str = "bearer"
    header: Optional[str] = None
    scopes: List[str] = field(default_factory=list)


@dataclass
class RateLimitSpec:
    requests: int
    window: str
    burst: Optional[int] = None


@dataclass
class APIContract:
    version: str = "1"
    request: Optional[TypeSchema] = None
    response: Optional[TypeSchema] = None
    errors: List[ErrorSchema] = field(default_factory=list)
    authentication: Optional[AuthenticationSpec] = None
    rate_limit: Optional[RateLimitSpec] = None
    deprecated: bool = False


# ===================================================================
# Entities and references
# ===================================================================

@dataclass
class CrossLanguageEntity:
    """A function, class, interface, schema or endpoint, normalized across languages."""
    id: str
    name: str
    language: str
    file: str
    type: str
    start_line: int
    end_line: int
    signature: Optional[str] = None
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None
    properties: List[PropertyInfo] = field(default_factory=list)
    visibility: str = "public"
    is_exported: bool = False
    is_async: bool = False
    class_name: Optional[str] = None
    calls: List[str] = field(default_factory=list)
    called_by: List[str] = field(default_factory=list)
    extends: List[str] = field(default_factory=list)
    implements: List[str] = field(default_factory=list)
    api_endpoint: Optional[str] = None
    api_method: Optional[str] = None
    api_contract: Optional[APIContract] = None
    documentation: Optional[str] = None
    complexity: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def qualname(self) -> str:
        return f"{self.class_name}.{self.name}" if self.class_name else self.name

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrossReference:
    source_id: str
    target_id: str
    type: str
    source_language: str
    target_language: str
    confidence: float
    protocol: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in REFERENCE_TYPES:
            raise ValueError(f"Unknown cross-reference type: {self.type}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence out of range: {self.confidence}")
        if self.protocol is not None and self.protocol not in PROTOCOLS:
            raise ValueError(f"Unknown protocol: {self.protocol}")

    @property
    def is_cross_language(self) -> bool:
        return self.source_language != self.target_language

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrossLanguageViolation(Violation):
    cross_language_type: str = ""
    related_files: List[str] = field(default_factory=list)
    related_languages: List[str] = field(default_factory=list)


# ===================================================================
# Dependency graph
# ===================================================================

@dataclass
class DependencyNode:
    id: str
    name: str
    language: str
    type: str
    file: str
    weight: int = 1
    cluster: Optional[str] = None


@dataclass
class DependencyEdge:
    source: str
    target: str
    type: str
    weight: float
    protocol: Optional[str] = None


@dataclass
class DependencyCycle:
    """Closed walk ``nodes[0] -> ... -> nodes[-1] -> nodes[0]``."""
    nodes: List[str]
    severity: str

    @property
    def length(self) -> int:
        return len(self.nodes)

    @property
    def path(self) -> List[str]:
        return self.nodes + self.nodes[:1]


@dataclass
class GraphMetrics:
    total_nodes: int = 0
    total_edges: int = 0
    cycle_count: int = 0
    strongly_connected_components: int = 0
    max_depth: int = 0
    average_depth: float = 0.0
    density: float = 0.0


@dataclass
class DependencyGraph:
    nodes: List[DependencyNode] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    cycles: List[DependencyCycle] = field(default_factory=list)
    metrics: GraphMetrics = field(default_factory=GraphMetrics)

    def adjacency(self) -> Dict[str, List[str]]:
        adj: Dict[str, List[str]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            targets = adj.setdefault(edge.source, [])
            if edge.target not in targets:
                targets.append(edge.target)
        return adj

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for cycle, raw in zip(self.cycles, payload["cycles"]):
            raw["length"] = cycle.length
        return payload


# ===================================================================
# Results
# ===================================================================

@dataclass
class AnalysisMetrics:
    files_analyzed: int = 0
    execution_time: float = 0.0


@dataclass
class AnalysisResult:
    """Output of one language task."""
    language: str
    violations: List[Violation] = field(default_factory=list)
    index_entries: List[CrossLanguageEntity] = field(default_factory=list)
    metrics: AnalysisMetrics = field(default_factory=AnalysisMetrics)
    errors: List[ErrorRecord] = field(default_factory=list)

    @classmethod
    def failed(cls, language: str, error: str, kind: str = "analysis") -> "AnalysisResult":
        return cls(language=language, errors=[ErrorRecord(error, kind=kind, language=language)])


@dataclass
class LanguageStats:
    files_analyzed: int = 0
    violations: int = 0
    functions: int = 0
    classes: int = 0
    interfaces: int = 0
    endpoints: int = 0
    execution_time: float = 0.0


@dataclass
class PolyglotMetrics:
    total_files: int = 0
    total_violations: int = 0
    languages_analyzed: List[str] = field(default_factory=list)
    execution_time: float = 0.0
    cross_language_references: int = 0
    api_contracts_checked: int = 0


@dataclass
class PolyglotAnalysisResult:
    violations: List[Violation] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    index_entries: List[CrossLanguageEntity] = field(default_factory=list)
    cross_language_violations: List[CrossLanguageViolation] = field(default_factory=list)
    cross_references: List[CrossReference] = field(default_factory=list)
    dependency_graph: Optional[DependencyGraph] = None
    api_contracts: List[Dict[str, Any]] = field(default_factory=list)
    metrics: PolyglotMetrics = field(default_factory=PolyglotMetrics)
    language_stats: Dict[str, LanguageStats] = field(default_factory=dict)
    feature_status: Dict[str, str] = field(default_factory=dict)

    @property
    def has_critical(self) -> bool:
        return any(
            v.severity == "critical"
            for v in [*self.violations, *self.cross_language_violations]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violations": [v.to_dict() for v in self.violations],
            "errors": [e.to_dict() for e in self.errors],
            "cross_language_violations": [v.to_dict() for v in self.cross_language_violations],
            "cross_references": [r.to_dict() for r in self.cross_references],
            "dependency_graph": self.dependency_graph.to_dict() if self.dependency_graph else None,
            "api_contracts": self.api_contracts,
            "metrics": asdict(self.metrics),
            "language_stats": {k: asdict(v) for k, v in self.language_stats.items()},
            "feature_status": dict(self.feature_status),
            "index_entries": [e.to_dict() for e in self.index_entries],
        }
