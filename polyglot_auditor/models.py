"""Language-neutral AST model and the projections extracted from it."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional

Severity = Literal["critical", "warning", "suggestion"]

SEVERITY_ORDER: Dict[str, int] = {"suggestion": 0, "warning": 1, "critical": 2}


def severity_at_least(severity: str, minimum: str) -> bool:
    return SEVERITY_ORDER.get(severity, 0) >= SEVERITY_ORDER.get(minimum, 0)


# ===================================================================
# Positions
# ===================================================================

@dataclass(frozen=True)
class Position:
    """1-based line/column pair."""
    line: int
    col: int


@dataclass(frozen=True)
class SourceLocation:
    start: Position
    end: Position

    @classmethod
    def from_points(cls, start_point: Any, end_point: Any) -> "SourceLocation":
        """Build from tree-sitter's 0-based ``(row, column)`` points."""
        return cls(
            Position(start_point[0] + 1, start_point[1] + 1),
            Position(end_point[0] + 1, end_point[1] + 1),
        )

    @property
    def start_line(self) -> int:
        return self.start.line

    @property
    def end_line(self) -> int:
        return self.end.line

    def __str__(self) -> str:
        return f"{self.start.line}:{self.start.col}-{self.end.line}:{self.end.col}"


# ===================================================================
# Tree
# ===================================================================

@dataclass(eq=False)
class ASTNode:
    """One node of a normalized tree.

    ``handle`` is the backing parser node and is opaque to everything
    except the adapter that created it.  Nodes are owned by the
    :class:`AST` that built them (``tree``); parent/child links never
    cross trees.
    """
    type: str
    start_byte: int
    end_byte: int
    location: SourceLocation
    handle: Any = field(default=None, repr=False)
    parent: Optional["ASTNode"] = field(default=None, repr=False)
    children: List["ASTNode"] = field(default_factory=list, repr=False)
    tree: Optional["AST"] = field(default=None, repr=False)

    def walk(self) -> Iterator["ASTNode"]:
        """Pre-order traversal without recursion."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def ancestors(self) -> Iterator["ASTNode"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    @property
    def text(self) -> str:
        if self.tree is None:
            return ""
        return self.tree.source[self.start_byte:self.end_byte].decode("utf-8", errors="replace")


@dataclass
class ParseDiagnostic:
    kind: str
    message: str
    location: Optional[SourceLocation] = None
    severity: str = "error"

    def __str__(self) -> str:
        where = f" at {self.location.start.line}:{self.location.start.col}" if self.location else ""
        return f"{self.message}{where}"


@dataclass(eq=False)
class AST:
    root: ASTNode
    language: str
    file_path: str
    source: bytes = field(default=b"", repr=False)
    errors: List[ParseDiagnostic] = field(default_factory=list)

    def walk(self) -> Iterator[ASTNode]:
        return self.root.walk()

    def owns(self, node: ASTNode) -> bool:
        return node.tree is self


# ===================================================================
# Projections
# ===================================================================

@dataclass
class ParameterInfo:
    name: str
    type: Optional[str] = None
    optional: bool = False
    default: Optional[str] = None


@dataclass
class FunctionInfo:
    name: str
    location: SourceLocation
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None
    is_async: bool = False
    is_exported: bool = False
    is_method: bool = False
    class_name: Optional[str] = None
    documentation: Optional[str] = None
    complexity: int = 1
    decorators: List[str] = field(default_factory=list)
    calls: List[str] = field(default_factory=list)

    @property
    def signature(self) -> str:
        params = ", ".join(
            f"{p.name}: {p.type}" if p.type else p.name for p in self.parameters
        )
        sig = f"{self.name}({params})"
        if self.return_type:
            sig += f" -> {self.return_type}"
        return sig


@dataclass
class PropertyInfo:
    name: str
    type: Optional[str] = None
    visibility: str = "public"
    is_static: bool = False
    is_readonly: bool = False
    optional: bool = False


@dataclass
class ClassInfo:
    name: str
    location: SourceLocation
    methods: List[FunctionInfo] = field(default_factory=list)
    properties: List[PropertyInfo] = field(default_factory=list)
    extends: List[str] = field(default_factory=list)
    implements: List[str] = field(default_factory=list)
    is_abstract: bool = False
    is_exported: bool = False
    documentation: Optional[str] = None
    decorators: List[str] = field(default_factory=list)


@dataclass
class InterfaceMember:
    name: str
    kind: Literal["method", "property"]
    type: Optional[str] = None
    optional: bool = False
    location: Optional[SourceLocation] = None


@dataclass
class InterfaceInfo:
    name: str
    location: SourceLocation
    members: List[InterfaceMember] = field(default_factory=list)
    extends: List[str] = field(default_factory=list)
    is_exported: bool = False
    documentation: Optional[str] = None


@dataclass
class ImportSpecifier:
    name: str
    alias: Optional[str] = None
    is_default: bool = False
    is_namespace: bool = False


@dataclass
class ImportInfo:
    source: str
    specifiers: List[ImportSpecifier]
    location: SourceLocation


@dataclass
class ExportInfo:
    name: str
    location: SourceLocation
    is_default: bool = False
    source: Optional[str] = None


@dataclass
class EndpointInfo:
    """An HTTP route declared in source (server side)."""
    method: str
    path: str
    location: SourceLocation
    handler: Optional[str] = None
    framework: str = ""
    requires_auth: bool = False
    deprecated: bool = False
    response_type: Optional[str] = None
    request_type: Optional[str] = None


@dataclass
class ApiCallInfo:
    """An outgoing HTTP request (client side)."""
    method: str
    url: str
    location: SourceLocation
    client: str = ""
    has_auth: bool = False
    expected_response_type: Optional[str] = None
    enclosing_function: Optional[str] = None


# ===================================================================
# Violations and error records
# ===================================================================

@dataclass
class Violation:
    file: str
    line: int
    column: int
    severity: str
    message: str
    rule: str
    analyzer: str
    fix: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if payload["fix"] is None:
            payload.pop("fix")
        if not payload["details"]:
            payload.pop("details")
        return payload


@dataclass
class ErrorRecord:
    """Something that could not be computed, scoped as narrowly as possible."""
    error: str
    kind: str = "analysis"
    file: Optional[str] = None
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class PassResult:
    """Return shape of one analysis pass over a file list."""
    violations: List[Violation] = field(default_factory=list)
    files_processed: int = 0
    execution_time: float = 0.0
    errors: List[ErrorRecord] = field(default_factory=list)
