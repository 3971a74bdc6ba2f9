"""Language adapter interface and the shared tree-sitter implementation."""

from __future__ import annotations

import importlib
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, FrozenSet, List, Optional, Pattern, Sequence, Union

from ..models import (
    AST,
    ApiCallInfo,
    ASTNode,
    ClassInfo,
    EndpointInfo,
    ExportInfo,
    FunctionInfo,
    ImportInfo,
    InterfaceInfo,
    ParseDiagnostic,
    Position,
    SourceLocation,
)

logger = logging.getLogger(__name__)


@dataclass
class NodePattern:
    """Declarative node query used by :meth:`LanguageAdapter.find_nodes`.

    All given criteria must hold.  ``name`` is compared for equality when it
    is a string and searched when it is a compiled regex.
    """
    type: Union[str, Sequence[str], None] = None
    name: Union[str, Pattern[str], None] = None
    has_child: Optional["NodePattern"] = None
    has_parent: Optional["NodePattern"] = None
    custom: Optional[Callable[[ASTNode], bool]] = None


# ===================================================================
# Abstract interface
# ===================================================================

class LanguageAdapter(ABC):
    """Capability set every supported language implements."""

    language: str = ""
    extensions: FrozenSet[str] = frozenset()

    @property
    def available(self) -> bool:
        return True

    def supports_file(self, path: Union[str, Path]) -> bool:
        return Path(str(path)).suffix.lower() in self.extensions

    @abstractmethod
    def parse(self, path: Union[str, Path], content: Union[str, bytes]) -> AST:
        """Parse *content*; never raises, populates ``AST.errors`` instead."""
        ...

    # ---- navigation ---------------------------------------------------

    def get_parent(self, node: ASTNode) -> Optional[ASTNode]:
        return node.parent

    def get_children(self, node: ASTNode) -> List[ASTNode]:
        return list(node.children)

    def get_node_type(self, node: ASTNode) -> str:
        return node.type

    def get_node_text(self, node: ASTNode) -> str:
        return node.text

    def get_node_location(self, node: ASTNode) -> SourceLocation:
        return node.location

    @abstractmethod
    def get_node_name(self, node: ASTNode) -> Optional[str]:
        ...

    def find_nodes(self, root: Union[AST, ASTNode], pattern: NodePattern) -> List[ASTNode]:
        start = root.root if isinstance(root, AST) else root
        return [node for node in start.walk() if self.matches_pattern(node, pattern)]

    def matches_pattern(self, node: ASTNode, pattern: NodePattern) -> bool:
        if pattern.type is not None:
            types = [pattern.type] if isinstance(pattern.type, str) else list(pattern.type)
            if node.type not in types:
                return False
        if pattern.name is not None:
            name = self.get_node_name(node)
            if name is None:
                return False
            if isinstance(pattern.name, str):
                if name != pattern.name:
                    return False
            elif not pattern.name.search(name):
                return False
        if pattern.has_child is not None:
            if not any(self.matches_pattern(child, pattern.has_child) for child in node.children):
                return False
        if pattern.has_parent is not None:
            if node.parent is None or not self.matches_pattern(node.parent, pattern.has_parent):
                return False
        if pattern.custom is not None and not pattern.custom(node):
            return False
        return True

    # ---- projections --------------------------------------------------

    @abstractmethod
    def extract_functions(self, ast: AST) -> List[FunctionInfo]:
        ...

    @abstractmethod
    def extract_classes(self, ast: AST) -> List[ClassInfo]:
        ...

    @abstractmethod
    def extract_imports(self, ast: AST) -> List[ImportInfo]:
        ...

    @abstractmethod
    def extract_exports(self, ast: AST) -> List[ExportInfo]:
        ...

    def extract_interfaces(self, ast: AST) -> List[InterfaceInfo]:
        return []

    def extract_endpoints(self, ast: AST) -> List[EndpointInfo]:
        return []

    def extract_api_calls(self, ast: AST) -> List[ApiCallInfo]:
        return []

    # ---- predicates ---------------------------------------------------

    @abstractmethod
    def is_class(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_function(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_method(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_interface(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_import(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_loop(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def is_conditional(self, node: ASTNode) -> bool:
        ...

    @abstractmethod
    def get_documentation(self, node: ASTNode) -> Optional[str]:
        ...

    @abstractmethod
    def get_complexity(self, node: ASTNode) -> int:
        ...


# ===================================================================
# Tree-sitter implementation
# ===================================================================

class TreeSitterAdapter(LanguageAdapter):
    """Adapter backed by a tree-sitter grammar package.

    Subclasses declare the grammar module and the node-type vocabulary;
    the conversion into :class:`ASTNode` trees, pattern matching,
    predicates and complexity scoring are shared.
    """

    grammar_module: str = ""
    grammar_function: str = "language"

    function_types: FrozenSet[str] = frozenset()
    class_types: FrozenSet[str] = frozenset()
    interface_types: FrozenSet[str] = frozenset()
    import_types: FrozenSet[str] = frozenset()
    loop_types: FrozenSet[str] = frozenset()
    conditional_types: FrozenSet[str] = frozenset()
    catch_types: FrozenSet[str] = frozenset()
    boolean_types: FrozenSet[str] = frozenset()
    boolean_operators: FrozenSet[str] = frozenset()

    def __init__(self) -> None:
        self._languages: dict = {}
        self._load_error: Optional[str] = None
        try:
            self._languages = self._load_languages()
        except (ImportError, AttributeError, ValueError) as exc:
            self._load_error = str(exc)
            logger.warning(
                "Grammar package '%s' not installed for language '%s'. "
                "Install with: pip install %s",
                self.grammar_module, self.language,
                self.grammar_module.replace("_", "-"),
            )

    def _load_languages(self) -> dict:
        from tree_sitter import Language

        mod = importlib.import_module(self.grammar_module)
        return {"default": Language(getattr(mod, self.grammar_function)())}

    @property
    def available(self) -> bool:
        return bool(self._languages)

    def _grammar_for(self, path: Union[str, Path]) -> Any:
        return self._languages["default"]

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, path: Union[str, Path], content: Union[str, bytes]) -> AST:
        source = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        file_path = str(path)
        try:
            from tree_sitter import Parser

            parser = Parser(self._grammar_for(path))
            tree = parser.parse(source)
        except Exception as exc:
            logger.debug("tree-sitter failed on %s: %s", file_path, exc)
            return self._empty_ast(file_path, source, f"Parser failure: {exc}")
        return self._convert(tree.root_node, file_path, source)

    def _empty_ast(self, file_path: str, source: bytes, message: str) -> AST:
        lines = source.count(b"\n") + 1
        location = SourceLocation(Position(1, 1), Position(lines, 1))
        root = ASTNode("ERROR", 0, len(source), location)
        ast = AST(root, self.language, file_path, source,
                  [ParseDiagnostic("internal", message, location)])
        root.tree = ast
        return ast

    def _convert(self, ts_root: Any, file_path: str, source: bytes) -> AST:
        root = self._wrap(ts_root, None)
        ast = AST(root, self.language, file_path, source)
        root.tree = ast

        stack = [(ts_root, root)]
        while stack:
            ts_node, node = stack.pop()
            if ts_node.is_error:
                snippet = source[ts_node.start_byte:ts_node.end_byte][:40].decode("utf-8", errors="replace")
                ast.errors.append(ParseDiagnostic(
                    "syntax-error", f"Syntax error near '{snippet.strip()}'", node.location,
                ))
            for child in ts_node.children:
                if child.is_missing:
                    ast.errors.append(ParseDiagnostic(
                        "missing-node", f"Missing {child.type}",
                        SourceLocation.from_points(child.start_point, child.end_point),
                    ))
                    continue
                if not child.is_named:
                    continue
                wrapped = self._wrap(child, node)
                wrapped.tree = ast
                node.children.append(wrapped)
                stack.append((child, wrapped))
        return ast

    @staticmethod
    def _wrap(ts_node: Any, parent: Optional[ASTNode]) -> ASTNode:
        return ASTNode(
            type=ts_node.type,
            start_byte=ts_node.start_byte,
            end_byte=ts_node.end_byte,
            location=SourceLocation.from_points(ts_node.start_point, ts_node.end_point),
            handle=ts_node,
            parent=parent,
        )

    # ------------------------------------------------------------------
    # Handle helpers (tree-sitter nodes)
    # ------------------------------------------------------------------

    @staticmethod
    def _text(ast: AST, ts_node: Any) -> str:
        if ts_node is None:
            return ""
        return ast.source[ts_node.start_byte:ts_node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def _loc(ts_node: Any) -> SourceLocation:
        return SourceLocation.from_points(ts_node.start_point, ts_node.end_point)

    @staticmethod
    def _field(ts_node: Any, name: str) -> Any:
        return ts_node.child_by_field_name(name) if ts_node is not None else None

    @staticmethod
    def _has_token(ts_node: Any, token: str) -> bool:
        return any(child.type == token for child in ts_node.children)

    def _nodes_of(self, ast: AST, types: FrozenSet[str]) -> List[ASTNode]:
        return [node for node in ast.walk() if node.type in types]

    # ------------------------------------------------------------------
    # Shared capability implementations
    # ------------------------------------------------------------------

    def get_node_name(self, node: ASTNode) -> Optional[str]:
        if node.handle is None or node.tree is None:
            return None
        name = self._field(node.handle, "name")
        if name is None:
            return None
        return self._text(node.tree, name)

    def is_class(self, node: ASTNode) -> bool:
        return node.type in self.class_types

    def is_function(self, node: ASTNode) -> bool:
        return node.type in self.function_types

    def is_method(self, node: ASTNode) -> bool:
        if not self.is_function(node):
            return False
        for ancestor in node.ancestors():
            if ancestor.type in self.class_types:
                return True
            if ancestor.type in self.function_types:
                return False
        return False

    def is_interface(self, node: ASTNode) -> bool:
        return node.type in self.interface_types

    def is_import(self, node: ASTNode) -> bool:
        return node.type in self.import_types

    def is_loop(self, node: ASTNode) -> bool:
        return node.type in self.loop_types

    def is_conditional(self, node: ASTNode) -> bool:
        return node.type in self.conditional_types

    def _is_boolean_branch(self, node: ASTNode) -> bool:
        if node.type not in self.boolean_types:
            return False
        if not self.boolean_operators:
            return True
        op = self._field(node.handle, "operator")
        return op is not None and op.type in self.boolean_operators

    def get_complexity(self, node: ASTNode) -> int:
        """Cyclomatic complexity: 1 + decision points, nested functions excluded."""
        complexity = 1
        stack = list(node.children)
        while stack:
            current = stack.pop()
            if current.type in self.function_types or current.type in self.class_types:
                continue
            if (
                current.type in self.conditional_types
                or current.type in self.loop_types
                or current.type in self.catch_types
                or self._is_boolean_branch(current)
            ):
                complexity += 1
            stack.extend(current.children)
        return complexity


_DOC_LINE_RE = re.compile(r"^\s*\*\s?")


def clean_block_comment(text: str) -> str:
    """Strip ``/** ... */`` framing and leading ``*`` from each line."""
    body = text.strip()
    if body.startswith("/**"):
        body = body[3:]
    elif body.startswith("/*"):
        body = body[2:]
    if body.endswith("*/"):
        body = body[:-2]
    lines = [_DOC_LINE_RE.sub("", line).rstrip() for line in body.splitlines()]
    return "\n".join(line for line in lines).strip()
