"""Python adapter built on tree-sitter-python."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

from ..http_surface import (
    AUTH_DECORATOR_RE,
    AUTH_MARKER_RE,
    AUTH_MIDDLEWARE_RE,
    CLIENT_OBJECT_RE,
    HTTP_METHODS,
    SERVER_OBJECT_RE,
    literal_string,
    looks_like_url,
    normalize_call_url,
    normalize_route_path,
)
from ..models import (
    AST,
    ApiCallInfo,
    ASTNode,
    ClassInfo,
    EndpointInfo,
    ExportInfo,
    FunctionInfo,
    ImportInfo,
    ImportSpecifier,
    InterfaceInfo,
    InterfaceMember,
    ParameterInfo,
    PropertyInfo,
)
from .base import TreeSitterAdapter

logger = logging.getLogger(__name__)

_PROTOCOL_BASES = frozenset({"Protocol", "typing.Protocol"})
_ABSTRACT_BASES = frozenset({"ABC", "abc.ABC"})
_ROUTE_DECORATORS = {m.lower() for m in HTTP_METHODS} | {"route", "api_route"}
_OPTIONAL_TYPE_RE = re.compile(r"^(Optional\[|.*\|\s*None$|None\s*\|)")


class PythonAdapter(TreeSitterAdapter):
    language = "python"
    extensions = frozenset({".py", ".pyi"})
    grammar_module = "tree_sitter_python"

    function_types = frozenset({"function_definition", "lambda"})
    class_types = frozenset({"class_definition"})
    interface_types = frozenset()
    import_types = frozenset({"import_statement", "import_from_statement", "future_import_statement"})
    loop_types = frozenset({"for_statement", "while_statement", "for_in_clause"})
    conditional_types = frozenset({
        "if_statement", "elif_clause", "conditional_expression", "if_clause", "case_clause",
    })
    catch_types = frozenset({"except_clause"})
    boolean_types = frozenset({"boolean_operator"})

    # ------------------------------------------------------------------
    # Predicates / documentation
    # ------------------------------------------------------------------

    def is_interface(self, node: ASTNode) -> bool:
        if node.type != "class_definition" or node.tree is None:
            return False
        return bool(_PROTOCOL_BASES.intersection(self._bases(node.tree, node.handle)))

    def get_documentation(self, node: ASTNode) -> Optional[str]:
        if node.tree is None or node.handle is None:
            return None
        target = node.handle
        if target.type == "decorated_definition":
            target = self._field(target, "definition")
        return self._docstring(node.tree, target)

    def _docstring(self, ast: AST, ts_node: Any) -> Optional[str]:
        body = self._field(ts_node, "body") if ts_node.type != "module" else ts_node
        if body is None:
            return None
        for child in body.named_children:
            if child.type == "comment":
                continue
            if child.type == "expression_statement" and child.named_children:
                first = child.named_children[0]
                if first.type == "string":
                    raw = literal_string(self._text(ast, first))
                    return raw.strip() if raw is not None else None
            return None
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _bases(self, ast: AST, class_node: Any) -> List[str]:
        bases: List[str] = []
        superclasses = self._field(class_node, "superclasses")
        if superclasses is None:
            return bases
        for arg in superclasses.named_children:
            if arg.type in ("identifier", "attribute"):
                bases.append(self._text(ast, arg))
            elif arg.type == "subscript":
                value = self._field(arg, "value")
                if value is not None:
                    bases.append(self._text(ast, value))
        return bases

    def _decorators(self, ast: AST, ts_node: Any) -> List[str]:
        parent = ts_node.parent
        if parent is None or parent.type != "decorated_definition":
            return []
        names = []
        for child in parent.named_children:
            if child.type == "decorator":
                names.append(self._text(ast, child).lstrip("@").strip())
        return names

    def _enclosing(self, ts_node: Any) -> Any:
        """Nearest enclosing function or class definition."""
        current = ts_node.parent
        while current is not None:
            if current.type in ("function_definition", "class_definition"):
                return current
            current = current.parent
        return None

    def _parameters(self, ast: AST, params_node: Any, is_method: bool) -> List[ParameterInfo]:
        params: List[ParameterInfo] = []
        if params_node is None:
            return params
        for child in params_node.named_children:
            kind = child.type
            if kind == "identifier":
                params.append(ParameterInfo(self._text(ast, child)))
            elif kind == "typed_parameter":
                inner = child.named_children[0] if child.named_children else None
                params.append(ParameterInfo(
                    self._text(ast, inner),
                    type=self._text(ast, self._field(child, "type")) or None,
                    optional=inner is not None and inner.type != "identifier",
                ))
            elif kind in ("default_parameter", "typed_default_parameter"):
                params.append(ParameterInfo(
                    self._text(ast, self._field(child, "name")),
                    type=self._text(ast, self._field(child, "type")) or None,
                    optional=True,
                    default=self._text(ast, self._field(child, "value")) or None,
                ))
            elif kind in ("list_splat_pattern", "dictionary_splat_pattern"):
                params.append(ParameterInfo(self._text(ast, child), optional=True))
        if is_method and params and params[0].name in ("self", "cls"):
            params = params[1:]
        return params

    def _call_name(self, ast: AST, call_node: Any) -> Optional[str]:
        func = self._field(call_node, "function")
        if func is None:
            return None
        if func.type == "identifier":
            return self._text(ast, func)
        if func.type == "attribute":
            return self._text(ast, self._field(func, "attribute"))
        return None

    def _calls_in(self, ast: AST, body: Any) -> List[str]:
        calls: List[str] = []
        if body is None:
            return calls
        stack = [body]
        while stack:
            current = stack.pop()
            if current.type == "call":
                name = self._call_name(ast, current)
                if name and name not in calls:
                    calls.append(name)
            if current is not body and current.type in ("function_definition", "class_definition"):
                continue
            stack.extend(reversed(current.named_children))
        return calls

    def _function_info(self, ast: AST, node: ASTNode) -> FunctionInfo:
        ts_node = node.handle
        enclosing = self._enclosing(ts_node)
        is_method = enclosing is not None and enclosing.type == "class_definition"
        name = self._text(ast, self._field(ts_node, "name"))
        return FunctionInfo(
            name=name,
            location=node.location,
            parameters=self._parameters(ast, self._field(ts_node, "parameters"), is_method),
            return_type=self._text(ast, self._field(ts_node, "return_type")) or None,
            is_async=self._has_token(ts_node, "async"),
            is_exported=not name.startswith("_") and (enclosing is None or is_method),
            is_method=is_method,
            class_name=self._text(ast, self._field(enclosing, "name")) if is_method else None,
            documentation=self._docstring(ast, ts_node),
            complexity=self.get_complexity(node),
            decorators=self._decorators(ast, ts_node),
            calls=self._calls_in(ast, self._field(ts_node, "body")),
        )

    def _class_properties(self, ast: AST, class_node: Any) -> List[PropertyInfo]:
        props: List[PropertyInfo] = []
        seen = set()
        body = self._field(class_node, "body")
        if body is None:
            return props
        for stmt in body.named_children:
            if stmt.type != "expression_statement" or not stmt.named_children:
                continue
            assign = stmt.named_children[0]
            if assign.type != "assignment":
                continue
            left = self._field(assign, "left")
            if left is None or left.type != "identifier":
                continue
            name = self._text(ast, left)
            type_text = self._text(ast, self._field(assign, "type")) or None
            has_default = self._field(assign, "right") is not None
            seen.add(name)
            props.append(PropertyInfo(
                name=name,
                type=type_text,
                visibility="private" if name.startswith("_") else "public",
                is_static=type_text is None or type_text.startswith("ClassVar"),
                optional=has_default or bool(type_text and _OPTIONAL_TYPE_RE.match(type_text)),
            ))

        # instance attributes assigned in __init__
        for stmt in body.named_children:
            definition = stmt
            if stmt.type == "decorated_definition":
                definition = self._field(stmt, "definition")
            if definition is None or definition.type != "function_definition":
                continue
            if self._text(ast, self._field(definition, "name")) != "__init__":
                continue
            stack = [self._field(definition, "body")]
            while stack:
                current = stack.pop()
                if current is None:
                    continue
                if current.type == "assignment":
                    left = self._field(current, "left")
                    if left is not None and left.type == "attribute":
                        obj = self._field(left, "object")
                        attr = self._text(ast, self._field(left, "attribute"))
                        if obj is not None and self._text(ast, obj) == "self" and attr not in seen:
                            seen.add(attr)
                            props.append(PropertyInfo(
                                name=attr,
                                type=self._text(ast, self._field(current, "type")) or None,
                                visibility="private" if attr.startswith("_") else "public",
                            ))
                if current.type in ("function_definition", "class_definition"):
                    continue
                stack.extend(current.named_children)
        return props

    def _class_methods(self, ast: AST, node: ASTNode) -> List[FunctionInfo]:
        methods = []
        for candidate in node.walk():
            if candidate.type != "function_definition":
                continue
            if self._enclosing(candidate.handle) == node.handle:
                methods.append(self._function_info(ast, candidate))
        return methods

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def extract_functions(self, ast: AST) -> List[FunctionInfo]:
        return [
            self._function_info(ast, node)
            for node in self._nodes_of(ast, frozenset({"function_definition"}))
        ]

    def extract_classes(self, ast: AST) -> List[ClassInfo]:
        classes = []
        for node in self._nodes_of(ast, self.class_types):
            if self.is_interface(node):
                continue
            ts_node = node.handle
            bases = self._bases(ast, ts_node)
            methods = self._class_methods(ast, node)
            decorators = self._decorators(ast, ts_node)
            is_abstract = bool(_ABSTRACT_BASES.intersection(bases)) or any(
                "abstractmethod" in d for m in methods for d in m.decorators
            )
            superclasses = self._field(ts_node, "superclasses")
            if superclasses is not None and "ABCMeta" in self._text(ast, superclasses):
                is_abstract = True
            name = self._text(ast, self._field(ts_node, "name"))
            classes.append(ClassInfo(
                name=name,
                location=node.location,
                methods=methods,
                properties=self._class_properties(ast, ts_node),
                extends=[b for b in bases if b not in _ABSTRACT_BASES],
                is_abstract=is_abstract,
                is_exported=not name.startswith("_"),
                documentation=self._docstring(ast, ts_node),
                decorators=decorators,
            ))
        return classes

    def extract_interfaces(self, ast: AST) -> List[InterfaceInfo]:
        interfaces = []
        for node in self._nodes_of(ast, self.class_types):
            if not self.is_interface(node):
                continue
            ts_node = node.handle
            members = [
                InterfaceMember(p.name, "property", p.type, p.optional)
                for p in self._class_properties(ast, ts_node)
            ]
            members.extend(
                InterfaceMember(m.name, "method", m.return_type, False, m.location)
                for m in self._class_methods(ast, node)
            )
            name = self._text(ast, self._field(ts_node, "name"))
            interfaces.append(InterfaceInfo(
                name=name,
                location=node.location,
                members=members,
                extends=[b for b in self._bases(ast, ts_node) if b not in _PROTOCOL_BASES],
                is_exported=not name.startswith("_"),
                documentation=self._docstring(ast, ts_node),
            ))
        return interfaces

    def extract_imports(self, ast: AST) -> List[ImportInfo]:
        imports = []
        for node in self._nodes_of(ast, self.import_types):
            ts_node = node.handle
            if ts_node.type == "import_statement":
                for child in ts_node.named_children:
                    if child.type == "aliased_import":
                        source = self._text(ast, self._field(child, "name"))
                        alias = self._text(ast, self._field(child, "alias"))
                    else:
                        source, alias = self._text(ast, child), None
                    imports.append(ImportInfo(
                        source,
                        [ImportSpecifier(source.split(".")[-1], alias, is_namespace=True)],
                        node.location,
                    ))
                continue

            if ts_node.type == "future_import_statement":
                source = "__future__"
            else:
                source = self._text(ast, self._field(ts_node, "module_name"))
            specifiers = []
            for child in ts_node.children_by_field_name("name"):
                if child.type == "aliased_import":
                    specifiers.append(ImportSpecifier(
                        self._text(ast, self._field(child, "name")),
                        self._text(ast, self._field(child, "alias")) or None,
                    ))
                else:
                    specifiers.append(ImportSpecifier(self._text(ast, child)))
            if any(child.type == "wildcard_import" for child in ts_node.named_children):
                specifiers.append(ImportSpecifier("*", is_namespace=True))
            imports.append(ImportInfo(source, specifiers, node.location))
        return imports

    def extract_exports(self, ast: AST) -> List[ExportInfo]:
        exports: List[ExportInfo] = []
        declared_all: Optional[List[str]] = None
        for stmt in ast.root.children:
            target = stmt.handle
            if target.type == "decorated_definition":
                target = self._field(target, "definition")
            if target is None:
                continue
            if target.type in ("function_definition", "class_definition"):
                exports.append(ExportInfo(self._text(ast, self._field(target, "name")), stmt.location))
            elif target.type == "expression_statement" and target.named_children:
                assign = target.named_children[0]
                left = self._field(assign, "left") if assign.type == "assignment" else None
                if left is None or left.type != "identifier":
                    continue
                name = self._text(ast, left)
                if name == "__all__":
                    right = self._field(assign, "right")
                    if right is not None and right.type in ("list", "tuple"):
                        declared_all = [
                            literal_string(self._text(ast, item)) or ""
                            for item in right.named_children if item.type == "string"
                        ]
                    continue
                exports.append(ExportInfo(name, stmt.location))
        if declared_all is not None:
            return [e for e in exports if e.name in declared_all]
        return [e for e in exports if not e.name.startswith("_")]

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    def _route_decorator(self, ast: AST, decorator: Any) -> Optional[dict]:
        expr = decorator.named_children[0] if decorator.named_children else None
        if expr is None or expr.type != "call":
            return None
        func = self._field(expr, "function")
        if func is None or func.type != "attribute":
            return None
        receiver = self._text(ast, self._field(func, "object")).split(".")[-1]
        verb = self._text(ast, self._field(func, "attribute"))
        if verb not in _ROUTE_DECORATORS or not SERVER_OBJECT_RE.match(receiver):
            return None

        path = None
        kwargs = {}
        args = self._field(expr, "arguments")
        for arg in args.named_children if args is not None else []:
            if arg.type == "string" and path is None:
                path = literal_string(self._text(ast, arg))
            elif arg.type == "keyword_argument":
                key = self._text(ast, self._field(arg, "name"))
                kwargs[key] = self._field(arg, "value")
        if path is None and "path" in kwargs:
            path = literal_string(self._text(ast, kwargs["path"]))
        if path is None:
            return None

        if verb in ("route", "api_route"):
            methods_node = kwargs.get("methods")
            methods = []
            if methods_node is not None:
                methods = [
                    (literal_string(self._text(ast, item)) or "").upper()
                    for item in methods_node.named_children if item.type == "string"
                ]
            methods = methods or ["GET"]
        else:
            methods = [verb.upper()]

        def _kw_text(key: str) -> str:
            value = kwargs.get(key)
            return self._text(ast, value) if value is not None else ""

        return {
            "methods": methods,
            "path": normalize_route_path(path),
            "response_model": _kw_text("response_model") or None,
            "deprecated": _kw_text("deprecated") == "True",
            "auth": bool(AUTH_MIDDLEWARE_RE.search(_kw_text("dependencies"))),
            "framework": "flask" if verb == "route" else "fastapi",
        }

    def extract_endpoints(self, ast: AST) -> List[EndpointInfo]:
        endpoints: List[EndpointInfo] = []
        for node in self._nodes_of(ast, frozenset({"decorated_definition"})):
            ts_node = node.handle
            definition = self._field(ts_node, "definition")
            if definition is None or definition.type != "function_definition":
                continue
            decorators = [c for c in ts_node.named_children if c.type == "decorator"]
            names = [self._text(ast, d).lstrip("@").strip() for d in decorators]
            routes = [r for r in (self._route_decorator(ast, d) for d in decorators) if r]
            if not routes:
                continue

            handler = self._text(ast, self._field(definition, "name"))
            params_text = self._text(ast, self._field(definition, "parameters"))
            depends_auth = any(
                AUTH_MIDDLEWARE_RE.search(m.group(1))
                for m in re.finditer(r"(?:Depends|Security)\(([^)]*)\)", params_text)
            )
            decorator_auth = any(AUTH_DECORATOR_RE.match(n) for n in names)
            deprecated_decorator = any(n.split("(")[0].endswith("deprecated") for n in names)
            return_type = self._text(ast, self._field(definition, "return_type")) or None
            request_type = self._request_type(ast, definition)

            for route in routes:
                for method in route["methods"]:
                    endpoints.append(EndpointInfo(
                        method=method,
                        path=route["path"],
                        location=self._loc(definition),
                        handler=handler,
                        framework=route["framework"],
                        requires_auth=route["auth"] or depends_auth or decorator_auth,
                        deprecated=route["deprecated"] or deprecated_decorator,
                        response_type=route["response_model"] or return_type,
                        request_type=request_type,
                    ))
        return endpoints

    def _request_type(self, ast: AST, definition: Any) -> Optional[str]:
        for param in self._parameters(ast, self._field(definition, "parameters"), False):
            if not param.type or param.default:
                continue
            head = param.type.split("[")[0]
            if head[:1].isupper() and head not in ("Request", "Response", "Optional", "BackgroundTasks"):
                return param.type
        return None

    def extract_api_calls(self, ast: AST) -> List[ApiCallInfo]:
        calls: List[ApiCallInfo] = []
        for node in self._nodes_of(ast, frozenset({"call"})):
            ts_node = node.handle
            func = self._field(ts_node, "function")
            if func is None or func.type != "attribute":
                continue
            receiver = self._text(ast, self._field(func, "object"))
            verb = self._text(ast, self._field(func, "attribute"))
            if not CLIENT_OBJECT_RE.match(receiver.split(".")[-1]):
                continue

            args = self._field(ts_node, "arguments")
            positional = [a for a in args.named_children if a.type != "keyword_argument"] if args else []
            keywords = {
                self._text(ast, self._field(a, "name")): self._field(a, "value")
                for a in (args.named_children if args else []) if a.type == "keyword_argument"
            }

            if verb.upper() in HTTP_METHODS:
                method = verb.upper()
                url_node = positional[0] if positional else keywords.get("url")
            elif verb == "request" and len(positional) >= 2:
                method = (literal_string(self._text(ast, positional[0])) or "").upper()
                url_node = positional[1]
            else:
                continue
            if url_node is None or url_node.type != "string" or method not in HTTP_METHODS:
                continue
            raw_url = literal_string(self._text(ast, url_node))
            if raw_url is None or not looks_like_url(raw_url):
                continue

            has_auth = "auth" in keywords or any(
                key in keywords and AUTH_MARKER_RE.search(self._text(ast, keywords[key]))
                for key in ("headers", "cookies")
            )
            enclosing = self._enclosing(ts_node)
            calls.append(ApiCallInfo(
                method=method,
                url=normalize_call_url(raw_url, interpolation="python"),
                location=node.location,
                client=receiver,
                has_auth=has_auth,
                expected_response_type=self._annotated_target(ast, ts_node),
                enclosing_function=(
                    self._text(ast, self._field(enclosing, "name"))
                    if enclosing is not None and enclosing.type == "function_definition" else None
                ),
            ))
        return calls

    def _annotated_target(self, ast: AST, ts_node: Any) -> Optional[str]:
        """Type annotation of ``x: T = <call>...`` wrapping the call, if any."""
        current = ts_node.parent
        for _ in range(4):
            if current is None:
                return None
            if current.type == "assignment":
                return self._text(ast, self._field(current, "type")) or None
            if current.type not in ("attribute", "call", "await", "parenthesized_expression"):
                return None
            current = current.parent
        return None
