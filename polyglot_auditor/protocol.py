"""Wire protocol spoken with out-of-process analyzers.

Request (one JSON document on stdin)::

    {"method": "analyze", "params": {"files": [...], "options": {...}}, "id": 1}

Response (last non-empty line of stdout)::

    {"id": 1, "result": {"violations": [...], "indexEntries": [...], "metrics": {...}, "errors": [...]}}
    {"id": 1, "error": {"code": -32000, "message": "..."}}

Keys are accepted in camelCase or snake_case.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .entities import (
    AnalysisMetrics,
    AnalysisResult,
    APIContract,
    AuthenticationSpec,
    CrossLanguageEntity,
    ENTITY_TYPES,
)
from .errors import AnalyzerProtocolError
from .extractor import IdAllocator, response_schema
from .models import ErrorRecord, ParameterInfo, PropertyInfo, Violation


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AnalyzeParams(WireModel):
    files: List[str]
    options: Dict[str, Any] = Field(default_factory=dict)


class AnalyzeRequest(WireModel):
    method: str = "analyze"
    params: AnalyzeParams
    id: int = 1

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class WireViolation(WireModel):
    file: str
    line: int = 1
    column: int = 1
    severity: str = "warning"
    message: str
    rule: str
    analyzer: str = "external"
    fix: Optional[str] = None


class WireParameter(WireModel):
    name: str
    type: Optional[str] = None
    optional: bool = False
    default_value: Optional[str] = None


class WireProperty(WireModel):
    name: str
    type: Optional[str] = None
    optional: bool = False
    visibility: str = "public"


class WireEntity(WireModel):
    id: Optional[str] = None
    name: str
    type: str = "function"
    file: str
    start_line: int = 1
    end_line: int = 1
    signature: Optional[str] = None
    parameters: List[WireParameter] = Field(default_factory=list)
    properties: List[WireProperty] = Field(default_factory=list)
    return_type: Optional[str] = None
    visibility: str = "public"
    calls: List[str] = Field(default_factory=list)
    extends: List[str] = Field(default_factory=list)
    implements: List[str] = Field(default_factory=list)
    api_endpoint: Optional[str] = None
    api_method: Optional[str] = None
    requires_auth: bool = False
    deprecated: bool = False
    complexity: int = 1
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _known_type(self) -> "WireEntity":
        if self.type not in ENTITY_TYPES:
            raise ValueError(f"unknown entity type '{self.type}'")
        return self


class WireError(WireModel):
    file: Optional[str] = None
    error: str


class WireMetrics(WireModel):
    files_analyzed: int = 0
    execution_time: float = 0.0


class WireResult(WireModel):
    violations: List[WireViolation] = Field(default_factory=list)
    index_entries: List[WireEntity] = Field(default_factory=list)
    metrics: WireMetrics = Field(default_factory=WireMetrics)
    errors: List[WireError] = Field(default_factory=list)


class WireFailure(WireModel):
    code: int = -32000
    message: str


class AnalyzeResponse(WireModel):
    id: Optional[int] = None
    result: Optional[WireResult] = None
    error: Optional[WireFailure] = None

    @model_validator(mode="after")
    def _one_of(self) -> "AnalyzeResponse":
        if (self.result is None) == (self.error is None):
            raise ValueError("response must carry exactly one of 'result' or 'error'")
        return self


def build_request(files: List[str], options: Dict[str, Any], request_id: int = 1) -> str:
    return AnalyzeRequest(params=AnalyzeParams(files=files, options=options), id=request_id).to_json()


def parse_response(stdout: str) -> AnalyzeResponse:
    """Parse the last non-empty stdout line.

    Raises:
        AnalyzerProtocolError: no line, invalid JSON, or schema mismatch.
    """
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise AnalyzerProtocolError("analyzer produced no output")
    try:
        return AnalyzeResponse.model_validate_json(lines[-1])
    except ValidationError as exc:
        first = exc.errors()[0]
        raise AnalyzerProtocolError(
            f"invalid analyzer response ({exc.error_count()} error(s)): {first['msg']}"
        ) from exc


def to_analysis_result(language: str, result: WireResult) -> AnalysisResult:
    """Convert a validated wire result into the in-process result model."""
    ids = IdAllocator()
    entities = []
    for entry in result.index_entries:
        # external ids are namespaced by language so they cannot collide across tasks
        if entry.id:
            entity_id = ids.claim(f"{language}:{entry.id}")
        else:
            entity_id = ids.allocate(language, entry.type, entry.file, entry.name, entry.start_line, 1)
        contract = None
        if entry.api_endpoint:
            contract = APIContract(
                response=response_schema(entry.return_type),
                authentication=AuthenticationSpec() if entry.requires_auth else None,
                deprecated=entry.deprecated,
            )
        entities.append(CrossLanguageEntity(
            id=entity_id,
            name=entry.name,
            language=language,
            file=entry.file,
            type=entry.type,
            start_line=entry.start_line,
            end_line=entry.end_line,
            signature=entry.signature,
            parameters=[
                ParameterInfo(p.name, p.type, p.optional, p.default_value) for p in entry.parameters
            ],
            return_type=entry.return_type,
            properties=[
                PropertyInfo(p.name, p.type, p.visibility, optional=p.optional) for p in entry.properties
            ],
            visibility=entry.visibility,
            is_exported=entry.visibility == "public",
            extends=list(entry.extends),
            implements=list(entry.implements),
            api_endpoint=entry.api_endpoint,
            api_method=entry.api_method.upper() if entry.api_method else None,
            api_contract=contract,
            complexity=entry.complexity,
            metadata={"call_names": list(entry.calls), **entry.metadata},
        ))

    return AnalysisResult(
        language=language,
        violations=[
            Violation(v.file, v.line, v.column, v.severity, v.message, v.rule, v.analyzer, v.fix)
            for v in result.violations
        ],
        index_entries=entities,
        metrics=AnalysisMetrics(result.metrics.files_analyzed, result.metrics.execution_time),
        errors=[ErrorRecord(e.error, kind="analysis", file=e.file, language=language) for e in result.errors],
    )
