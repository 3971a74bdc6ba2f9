"""Entity extraction: projections from each AST into CrossLanguageEntity records."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from .adapters.base import LanguageAdapter
from .adapters.registry import AdapterRegistry
from .entities import APIContract, AuthenticationSpec, CrossLanguageEntity, TypeSchema
from .http_surface import coarse_type
from .models import AST, ClassInfo, ErrorRecord, PropertyInfo

logger = logging.getLogger(__name__)

_SCHEMA_BASES = {"BaseModel", "TypedDict", "Schema", "SQLModel", "Model", "Struct", "NamedTuple"}
_SCHEMA_DECORATORS = ("dataclass", "attr.s", "attrs.define", "define", "Entity", "Schema")


class IdAllocator:
    """Hands out entity ids unique within one extraction run."""

    def __init__(self) -> None:
        self._used: Set[str] = set()

    def allocate(self, language: str, kind: str, file: str, name: str, line: int, col: int) -> str:
        return self.claim(f"{language}:{kind}:{file}:{name}:{line}:{col}")

    def claim(self, base: str) -> str:
        candidate = base
        suffix = 2
        while candidate in self._used:
            candidate = f"{base}#{suffix}"
            suffix += 1
        self._used.add(candidate)
        return candidate


def is_schema_class(cls: ClassInfo) -> bool:
    bases = {b.split(".")[-1] for b in cls.extends}
    if bases & _SCHEMA_BASES:
        return True
    return any(d.split("(")[0].endswith(_SCHEMA_DECORATORS) for d in cls.decorators)


def response_schema(type_text: Optional[str]) -> Optional[TypeSchema]:
    kind = coarse_type(type_text)
    if kind is None:
        return None
    if kind == "array":
        return TypeSchema("array", items=TypeSchema("object"), ref=type_text)
    return TypeSchema(kind, ref=type_text)


class EntityExtractor:
    """Builds entities for one language task; each call reparses its files."""

    def __init__(self, registry: AdapterRegistry, ids: Optional[IdAllocator] = None) -> None:
        self.registry = registry
        self.ids = ids or IdAllocator()

    def extract(
        self, files: Sequence[Union[str, Path]],
    ) -> Tuple[List[CrossLanguageEntity], List[ErrorRecord], int]:
        """Return ``(entities, errors, files_processed)``."""
        entities: List[CrossLanguageEntity] = []
        errors: List[ErrorRecord] = []
        processed = 0
        for file in files:
            adapter = self.registry.adapter_for(file)
            if adapter is None:
                continue
            path = Path(file)
            try:
                content = path.read_bytes()
            except OSError as exc:
                errors.append(ErrorRecord(f"Read error: {exc}", kind="read", file=str(path),
                                          language=adapter.language))
                continue
            try:
                ast = adapter.parse(path, content)
                if ast.errors:
                    shown = "; ".join(str(d) for d in ast.errors[:3])
                    more = f" (+{len(ast.errors) - 3} more)" if len(ast.errors) > 3 else ""
                    errors.append(ErrorRecord(f"Parse error: {shown}{more}", kind="parse",
                                              file=str(path), language=adapter.language))
                entities.extend(self.extract_ast(ast, adapter))
                processed += 1
            except Exception as exc:
                logger.debug("Entity extraction failed for %s", path, exc_info=True)
                errors.append(ErrorRecord(f"Extraction error: {exc}", kind="analysis",
                                          file=str(path), language=adapter.language))
        return entities, errors, processed

    def extract_ast(self, ast: AST, adapter: LanguageAdapter) -> List[CrossLanguageEntity]:
        lang = ast.language
        file = ast.file_path
        root_loc = ast.root.location

        module = CrossLanguageEntity(
            id=self.ids.allocate(lang, "module", file, Path(file).stem, 1, 1),
            name=Path(file).stem,
            language=lang,
            file=file,
            type="module",
            start_line=root_loc.start_line,
            end_line=root_loc.end_line,
            metadata={
                "imports": [
                    {"source": imp.source, "names": [s.alias or s.name for s in imp.specifiers]}
                    for imp in adapter.extract_imports(ast)
                ],
                "exports": [exp.name for exp in adapter.extract_exports(ast)],
            },
        )
        entities = [module]
        functions: List[CrossLanguageEntity] = []

        for fn in adapter.extract_functions(ast):
            entity = CrossLanguageEntity(
                id=self.ids.allocate(lang, "function", file, fn.name, fn.location.start.line, fn.location.start.col),
                name=fn.name,
                language=lang,
                file=file,
                type="function",
                start_line=fn.location.start_line,
                end_line=fn.location.end_line,
                signature=fn.signature,
                parameters=list(fn.parameters),
                return_type=fn.return_type,
                visibility="public" if fn.is_exported else "private",
                is_exported=fn.is_exported,
                is_async=fn.is_async,
                class_name=fn.class_name,
                documentation=fn.documentation,
                complexity=fn.complexity,
                metadata={"call_names": list(fn.calls), "is_method": fn.is_method,
                          "decorators": list(fn.decorators)},
            )
            functions.append(entity)
        entities.extend(functions)

        for cls in adapter.extract_classes(ast):
            kind = "schema" if is_schema_class(cls) else "class"
            entities.append(CrossLanguageEntity(
                id=self.ids.allocate(lang, kind, file, cls.name, cls.location.start.line, cls.location.start.col),
                name=cls.name,
                language=lang,
                file=file,
                type=kind,
                start_line=cls.location.start_line,
                end_line=cls.location.end_line,
                properties=[p for p in cls.properties if p.visibility == "public"],
                visibility="public" if cls.is_exported else "private",
                is_exported=cls.is_exported,
                extends=list(cls.extends),
                implements=list(cls.implements),
                documentation=cls.documentation,
                metadata={"methods": [m.name for m in cls.methods], "abstract": cls.is_abstract,
                          "decorators": list(cls.decorators)},
            ))

        for iface in adapter.extract_interfaces(ast):
            entities.append(CrossLanguageEntity(
                id=self.ids.allocate(lang, "interface", file, iface.name,
                                     iface.location.start.line, iface.location.start.col),
                name=iface.name,
                language=lang,
                file=file,
                type="interface",
                start_line=iface.location.start_line,
                end_line=iface.location.end_line,
                properties=[
                    PropertyInfo(m.name, m.type, optional=m.optional)
                    for m in iface.members if m.kind == "property"
                ],
                is_exported=iface.is_exported,
                extends=list(iface.extends),
                documentation=iface.documentation,
                metadata={"methods": [m.name for m in iface.members if m.kind == "method"]},
            ))

        for endpoint in adapter.extract_endpoints(ast):
            name = f"{endpoint.method} {endpoint.path}"
            contract = APIContract(
                request=response_schema(endpoint.request_type),
                response=response_schema(endpoint.response_type),
                authentication=AuthenticationSpec() if endpoint.requires_auth else None,
                deprecated=endpoint.deprecated,
            )
            entities.append(CrossLanguageEntity(
                id=self.ids.allocate(lang, "endpoint", file, name,
                                     endpoint.location.start.line, endpoint.location.start.col),
                name=name,
                language=lang,
                file=file,
                type="endpoint",
                start_line=endpoint.location.start_line,
                end_line=endpoint.location.end_line,
                return_type=endpoint.response_type,
                api_endpoint=endpoint.path,
                api_method=endpoint.method,
                api_contract=contract,
                metadata={"handler": endpoint.handler, "framework": endpoint.framework},
            ))

        for call in adapter.extract_api_calls(ast):
            owner = self._owner_of(call.location.start_line, functions) or module
            owner.metadata.setdefault("api_calls", []).append({
                "method": call.method,
                "url": call.url,
                "line": call.location.start.line,
                "column": call.location.start.col,
                "has_auth": call.has_auth,
                "expected_response_type": call.expected_response_type,
                "client": call.client,
            })

        return entities

    @staticmethod
    def _owner_of(line: int, functions: List[CrossLanguageEntity]) -> Optional[CrossLanguageEntity]:
        """Innermost function whose line span contains *line*."""
        best: Optional[CrossLanguageEntity] = None
        for fn in functions:
            if fn.start_line <= line <= fn.end_line:
                if best is None or (fn.end_line - fn.start_line) < (best.end_line - best.start_line):
                    best = fn
        return best


def entity_api_calls(entity: CrossLanguageEntity) -> List[Dict[str, Any]]:
    return list(entity.metadata.get("api_calls", []))
