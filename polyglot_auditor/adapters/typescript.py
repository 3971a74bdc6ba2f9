"""TypeScript and JavaScript adapters built on tree-sitter."""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from ..http_surface import (
    AUTH_MARKER_RE,
    AUTH_MIDDLEWARE_RE,
    CLIENT_OBJECT_RE,
    HTTP_METHODS,
    SERVER_OBJECT_RE,
    literal_string,
    looks_like_url,
    normalize_call_url,
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
from .base import TreeSitterAdapter, clean_block_comment

logger = logging.getLogger(__name__)

_FUNCTION_VALUES = frozenset({
    "arrow_function", "function_expression", "function", "generator_function",
})
_DECLARED_FUNCTIONS = frozenset({"function_declaration", "generator_function_declaration"})
_FIELD_TYPES = frozenset({"public_field_definition", "field_definition"})
_STRING_TYPES = frozenset({"string", "template_string"})
_ROUTE_VERBS = {m.lower() for m in HTTP_METHODS} | {"all"}


class _ECMAScriptAdapter(TreeSitterAdapter):
    """Shared logic for the TypeScript and JavaScript grammars."""

    function_types = frozenset({
        "function_declaration", "generator_function_declaration", "function_expression",
        "function", "generator_function", "arrow_function", "method_definition",
    })
    class_types = frozenset({"class_declaration", "abstract_class_declaration", "class"})
    interface_types = frozenset({"interface_declaration"})
    import_types = frozenset({"import_statement"})
    loop_types = frozenset({"for_statement", "for_in_statement", "while_statement", "do_statement"})
    conditional_types = frozenset({"if_statement", "ternary_expression", "switch_case"})
    catch_types = frozenset({"catch_clause"})
    boolean_types = frozenset({"binary_expression"})
    boolean_operators = frozenset({"&&", "||", "??"})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _statement_of(ts_node: Any) -> Any:
        """The statement that carries comments/export for a declaration."""
        current = ts_node
        if current.type == "variable_declarator" and current.parent is not None:
            current = current.parent
        if current.parent is not None and current.parent.type == "export_statement":
            current = current.parent
        return current

    def _is_exported(self, ts_node: Any) -> bool:
        return self._statement_of(ts_node).type == "export_statement"

    def _jsdoc(self, ast: AST, ts_node: Any) -> Optional[str]:
        sibling = self._statement_of(ts_node).prev_named_sibling
        if sibling is None or sibling.type != "comment":
            return None
        text = self._text(ast, sibling)
        if not text.startswith("/**"):
            return None
        return clean_block_comment(text)

    def get_documentation(self, node: ASTNode) -> Optional[str]:
        if node.tree is None or node.handle is None:
            return None
        return self._jsdoc(node.tree, node.handle)

    def get_node_name(self, node: ASTNode) -> Optional[str]:
        name = super().get_node_name(node)
        if name is None and node.type in _FUNCTION_VALUES and node.parent is not None:
            if node.parent.type == "variable_declarator":
                return super().get_node_name(node.parent)
        return name

    @staticmethod
    def _type_text(text: str) -> Optional[str]:
        text = text.strip()
        if text.startswith(":"):
            text = text[1:].strip()
        return text or None

    def _parameters(self, ast: AST, fn: Any) -> List[ParameterInfo]:
        params_node = self._field(fn, "parameters")
        if params_node is None:
            single = self._field(fn, "parameter")
            return [ParameterInfo(self._text(ast, single))] if single is not None else []
        params = []
        for child in params_node.named_children:
            kind = child.type
            if kind in ("required_parameter", "optional_parameter"):
                value = self._field(child, "value")
                params.append(ParameterInfo(
                    self._text(ast, self._field(child, "pattern")),
                    type=self._type_text(self._text(ast, self._field(child, "type"))),
                    optional=kind == "optional_parameter" or value is not None,
                    default=self._text(ast, value) or None,
                ))
            elif kind == "assignment_pattern":
                params.append(ParameterInfo(
                    self._text(ast, self._field(child, "left")),
                    optional=True,
                    default=self._text(ast, self._field(child, "right")) or None,
                ))
            elif kind == "rest_pattern":
                params.append(ParameterInfo(self._text(ast, child), optional=True))
            elif kind != "comment":
                params.append(ParameterInfo(self._text(ast, child)))
        return params

    def _call_name(self, ast: AST, call: Any) -> Optional[str]:
        target = self._field(call, "function" if call.type == "call_expression" else "constructor")
        if target is None:
            return None
        if target.type == "identifier":
            return self._text(ast, target)
        if target.type == "member_expression":
            return self._text(ast, self._field(target, "property"))
        return None

    def _calls_in(self, ast: AST, body: Any) -> List[str]:
        calls: List[str] = []
        if body is None:
            return calls
        stack = [body]
        while stack:
            current = stack.pop()
            if current.type in ("call_expression", "new_expression"):
                name = self._call_name(ast, current)
                if name and name not in calls:
                    calls.append(name)
            if current is not body and current.type in _DECLARED_FUNCTIONS | self.class_types:
                continue
            stack.extend(reversed(current.named_children))
        return calls

    def _decorators(self, ast: AST, ts_node: Any) -> List[str]:
        names = [
            self._text(ast, c).lstrip("@") for c in ts_node.named_children if c.type == "decorator"
        ]
        sibling = ts_node.prev_named_sibling
        while sibling is not None and sibling.type in ("decorator", "comment"):
            if sibling.type == "decorator":
                names.insert(0, self._text(ast, sibling).lstrip("@"))
            sibling = sibling.prev_named_sibling
        return names

    def _accessibility(self, ast: AST, ts_node: Any) -> str:
        for child in ts_node.named_children:
            if child.type == "accessibility_modifier":
                return self._text(ast, child)
        name = self._field(ts_node, "name") or self._field(ts_node, "property")
        if name is not None and name.type == "private_property_identifier":
            return "private"
        return "public"

    def _enclosing_class(self, ts_node: Any) -> Any:
        current = ts_node.parent
        while current is not None:
            if current.type in self.class_types:
                return current
            if current.type in _DECLARED_FUNCTIONS:
                return None
            current = current.parent
        return None

    def _function_info(
        self,
        ast: AST,
        node: ASTNode,
        name: str,
        fn: Any,
        fn_node: Optional[ASTNode] = None,
    ) -> FunctionInfo:
        owner = node.handle
        is_member = owner.type in ("method_definition", "abstract_method_signature")
        cls = self._enclosing_class(owner) if is_member else None
        class_name = None
        if cls is not None:
            class_name = self._text(ast, self._field(cls, "name")) or None
        visibility = self._accessibility(ast, owner) if cls is not None else "public"
        return FunctionInfo(
            name=name,
            location=node.location,
            parameters=self._parameters(ast, fn),
            return_type=self._type_text(self._text(ast, self._field(fn, "return_type"))),
            is_async=self._has_token(fn, "async"),
            is_exported=self._is_exported(owner) if cls is None else visibility == "public",
            is_method=cls is not None,
            class_name=class_name,
            documentation=self._jsdoc(ast, owner),
            complexity=self.get_complexity(fn_node or node),
            decorators=self._decorators(ast, owner) if cls is not None else [],
            calls=self._calls_in(ast, self._field(fn, "body")),
        )

    def _named_functions(self, ast: AST):
        """Yield ``(declaration, name, function handle, function node)``."""
        for node in ast.walk():
            handle = node.handle
            if node.type in _DECLARED_FUNCTIONS or node.type == "method_definition":
                yield node, self._text(ast, self._field(handle, "name")), handle, node
            elif node.type == "variable_declarator":
                value = self._field(handle, "value")
                if value is not None and value.type in _FUNCTION_VALUES:
                    value_node = next((c for c in node.children if c.handle == value), node)
                    yield node, self._text(ast, self._field(handle, "name")), value, value_node

    def _heritage(self, ast: AST, class_node: Any):
        extends: List[str] = []
        implements: List[str] = []
        clauses = []
        for child in class_node.named_children:
            if child.type == "class_heritage":
                typed = [c for c in child.named_children if c.type in ("extends_clause", "implements_clause")]
                if typed:
                    clauses.extend(typed)
                else:
                    # JavaScript grammar: class_heritage holds the expression directly
                    extends.extend(
                        self._text(ast, c) for c in child.named_children if c.type != "comment"
                    )
            elif child.type in ("extends_clause", "implements_clause"):
                clauses.append(child)
        for clause in clauses:
            target = extends if clause.type == "extends_clause" else implements
            for item in clause.named_children:
                if item.type in ("type_arguments", "comment"):
                    continue
                if item.type == "generic_type":
                    item = self._field(item, "name") or item
                target.append(self._text(ast, item))
        return extends, implements

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def extract_functions(self, ast: AST) -> List[FunctionInfo]:
        return [
            self._function_info(ast, node, name, fn, fn_node)
            for node, name, fn, fn_node in self._named_functions(ast)
        ]

    def extract_classes(self, ast: AST) -> List[ClassInfo]:
        classes = []
        for node in self._nodes_of(ast, self.class_types):
            ts_node = node.handle
            name_node = self._field(ts_node, "name")
            if name_node is None and ts_node.parent is not None and ts_node.parent.type == "variable_declarator":
                name_node = self._field(ts_node.parent, "name")
            if name_node is None:
                continue
            body = self._field(ts_node, "body")
            methods: List[FunctionInfo] = []
            properties: List[PropertyInfo] = []
            for member in node.children:
                if member.handle != body:
                    continue
                for item in member.children:
                    handle = item.handle
                    if item.type in ("method_definition", "abstract_method_signature"):
                        name = self._text(ast, self._field(handle, "name"))
                        methods.append(self._function_info(ast, item, name, handle))
                        if name == "constructor":
                            properties.extend(self._parameter_properties(ast, handle))
                    elif item.type in _FIELD_TYPES:
                        prop_name = self._field(handle, "name") or self._field(handle, "property")
                        properties.append(PropertyInfo(
                            name=self._text(ast, prop_name),
                            type=self._type_text(self._text(ast, self._field(handle, "type"))),
                            visibility=self._accessibility(ast, handle),
                            is_static=self._has_token(handle, "static"),
                            is_readonly=self._has_token(handle, "readonly"),
                            optional=self._has_token(handle, "?"),
                        ))
            extends, implements = self._heritage(ast, ts_node)
            classes.append(ClassInfo(
                name=self._text(ast, name_node),
                location=node.location,
                methods=methods,
                properties=properties,
                extends=extends,
                implements=implements,
                is_abstract=ts_node.type == "abstract_class_declaration",
                is_exported=self._is_exported(ts_node),
                documentation=self._jsdoc(ast, ts_node),
                decorators=self._decorators(ast, ts_node),
            ))
        return classes

    def _parameter_properties(self, ast: AST, ctor: Any) -> List[PropertyInfo]:
        """``constructor(private readonly repo: Repo)`` declares ``repo``."""
        props = []
        params = self._field(ctor, "parameters")
        for param in params.named_children if params is not None else []:
            modifiers = [c for c in param.named_children if c.type == "accessibility_modifier"]
            readonly = self._has_token(param, "readonly")
            if not modifiers and not readonly:
                continue
            props.append(PropertyInfo(
                name=self._text(ast, self._field(param, "pattern")),
                type=self._type_text(self._text(ast, self._field(param, "type"))),
                visibility=self._text(ast, modifiers[0]) if modifiers else "public",
                is_readonly=readonly,
                optional=param.type == "optional_parameter",
            ))
        return props

    def extract_interfaces(self, ast: AST) -> List[InterfaceInfo]:
        interfaces = []
        for node in ast.walk():
            ts_node = node.handle
            if node.type == "interface_declaration":
                body = self._field(ts_node, "body")
            elif node.type == "type_alias_declaration":
                body = self._field(ts_node, "value")
                if body is None or body.type != "object_type":
                    continue
            else:
                continue
            members = []
            for item in body.named_children if body is not None else []:
                if item.type == "property_signature":
                    members.append(InterfaceMember(
                        self._text(ast, self._field(item, "name")),
                        "property",
                        self._type_text(self._text(ast, self._field(item, "type"))),
                        optional=self._has_token(item, "?"),
                        location=self._loc(item),
                    ))
                elif item.type == "method_signature":
                    members.append(InterfaceMember(
                        self._text(ast, self._field(item, "name")),
                        "method",
                        self._type_text(self._text(ast, self._field(item, "return_type"))),
                        optional=self._has_token(item, "?"),
                        location=self._loc(item),
                    ))
            extends = []
            for child in ts_node.named_children:
                if child.type == "extends_type_clause":
                    extends.extend(self._text(ast, t) for t in child.named_children)
            interfaces.append(InterfaceInfo(
                name=self._text(ast, self._field(ts_node, "name")),
                location=node.location,
                members=members,
                extends=extends,
                is_exported=self._is_exported(ts_node),
                documentation=self._jsdoc(ast, ts_node),
            ))
        return interfaces

    def extract_imports(self, ast: AST) -> List[ImportInfo]:
        imports = []
        for node in ast.walk():
            ts_node = node.handle
            if node.type == "import_statement":
                source = literal_string(self._text(ast, self._field(ts_node, "source"))) or ""
                specifiers: List[ImportSpecifier] = []
                for clause in ts_node.named_children:
                    if clause.type != "import_clause":
                        continue
                    for part in clause.named_children:
                        if part.type == "identifier":
                            specifiers.append(ImportSpecifier(self._text(ast, part), is_default=True))
                        elif part.type == "namespace_import":
                            ident = part.named_children[0] if part.named_children else None
                            specifiers.append(ImportSpecifier(
                                "*", alias=self._text(ast, ident) or None, is_namespace=True,
                            ))
                        elif part.type == "named_imports":
                            for spec in part.named_children:
                                if spec.type != "import_specifier":
                                    continue
                                specifiers.append(ImportSpecifier(
                                    self._text(ast, self._field(spec, "name")),
                                    alias=self._text(ast, self._field(spec, "alias")) or None,
                                ))
                imports.append(ImportInfo(source, specifiers, node.location))
            elif node.type == "call_expression":
                func = self._field(ts_node, "function")
                if func is None or self._text(ast, func) != "require":
                    continue
                args = self._field(ts_node, "arguments")
                first = args.named_children[0] if args is not None and args.named_children else None
                if first is None or first.type != "string":
                    continue
                parent = ts_node.parent
                specifiers = []
                if parent is not None and parent.type == "variable_declarator":
                    specifiers.append(ImportSpecifier(
                        self._text(ast, self._field(parent, "name")), is_default=True,
                    ))
                imports.append(ImportInfo(literal_string(self._text(ast, first)) or "", specifiers, node.location))
        return imports

    def extract_exports(self, ast: AST) -> List[ExportInfo]:
        exports = []
        for node in self._nodes_of(ast, frozenset({"export_statement"})):
            ts_node = node.handle
            is_default = self._has_token(ts_node, "default")
            source_node = self._field(ts_node, "source")
            source = literal_string(self._text(ast, source_node)) if source_node is not None else None
            declaration = self._field(ts_node, "declaration")
            if declaration is not None:
                if declaration.type in ("lexical_declaration", "variable_declaration"):
                    for declarator in declaration.named_children:
                        if declarator.type == "variable_declarator":
                            exports.append(ExportInfo(
                                self._text(ast, self._field(declarator, "name")), node.location,
                            ))
                else:
                    name = self._text(ast, self._field(declaration, "name")) or "default"
                    exports.append(ExportInfo(name, node.location, is_default=is_default))
                continue
            clause = next((c for c in ts_node.named_children if c.type == "export_clause"), None)
            if clause is not None:
                for spec in clause.named_children:
                    if spec.type != "export_specifier":
                        continue
                    alias = self._field(spec, "alias")
                    name = self._text(ast, alias if alias is not None else self._field(spec, "name"))
                    exports.append(ExportInfo(name, node.location, is_default=name == "default", source=source))
                continue
            value = self._field(ts_node, "value")
            if is_default:
                name = self._text(ast, value) if value is not None and value.type == "identifier" else "default"
                exports.append(ExportInfo(name, node.location, is_default=True))
            elif source is not None:
                exports.append(ExportInfo("*", node.location, source=source))
        return exports

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    def _url_of(self, ast: AST, ts_node: Any) -> Optional[str]:
        """Flatten a string, template or ``'a' + b`` concatenation into a URL."""
        parts: List[str] = []
        stack = [ts_node]
        while stack:
            current = stack.pop()
            if current.type in _STRING_TYPES:
                parts.append(literal_string(self._text(ast, current)) or "")
            elif current.type == "binary_expression" and self._text(ast, self._field(current, "operator")) == "+":
                stack.append(self._field(current, "right"))
                stack.append(self._field(current, "left"))
            elif current.type == "parenthesized_expression" and current.named_children:
                stack.append(current.named_children[0])
            else:
                parts.append("${x}")
        url = "".join(parts)
        return url if looks_like_url(url) else None

    def _object_pairs(self, ast: AST, obj: Any) -> dict:
        pairs = {}
        if obj is None or obj.type != "object":
            return pairs
        for pair in obj.named_children:
            if pair.type != "pair":
                continue
            key = self._text(ast, self._field(pair, "key"))
            pairs[literal_string(key) or key] = self._field(pair, "value")
        return pairs

    def _enclosing_function_name(self, ast: AST, ts_node: Any) -> Optional[str]:
        current = ts_node.parent
        while current is not None:
            if current.type in _DECLARED_FUNCTIONS or current.type == "method_definition":
                return self._text(ast, self._field(current, "name")) or None
            if current.type in _FUNCTION_VALUES and current.parent is not None \
                    and current.parent.type == "variable_declarator":
                return self._text(ast, self._field(current.parent, "name")) or None
            current = current.parent
        return None

    def _expected_type(self, ast: AST, call: Any) -> Optional[str]:
        type_args = self._field(call, "type_arguments")
        if type_args is not None and type_args.named_children:
            return self._text(ast, type_args.named_children[0])
        current = call.parent
        for _ in range(5):
            if current is None:
                return None
            if current.type == "variable_declarator":
                return self._type_text(self._text(ast, self._field(current, "type")))
            if current.type in ("as_expression", "satisfies_expression"):
                named = current.named_children
                return self._text(ast, named[-1]) if len(named) > 1 else None
            if current.type not in ("await_expression", "member_expression", "parenthesized_expression",
                                    "non_null_expression"):
                return None
            current = current.parent
        return None

    def extract_api_calls(self, ast: AST) -> List[ApiCallInfo]:
        calls = []
        for node in self._nodes_of(ast, frozenset({"call_expression"})):
            ts_node = node.handle
            func = self._field(ts_node, "function")
            args_node = self._field(ts_node, "arguments")
            args = [a for a in args_node.named_children if a.type != "comment"] if args_node is not None else []
            if func is None or not args:
                continue
            if func.type == "await_expression" and func.named_children:
                # `await axios.get<T>(url)` parses with the await wrapping the callee
                func = func.named_children[0]

            func_text = self._text(ast, func)
            method: Optional[str] = None
            url_node = None
            options = []
            if func_text in ("fetch", "window.fetch", "globalThis.fetch"):
                url_node = args[0]
                options = args[1:]
                pairs = self._object_pairs(ast, args[1]) if len(args) > 1 else {}
                method_node = pairs.get("method")
                method = (literal_string(self._text(ast, method_node)) or "GET") if method_node else "GET"
                client = "fetch"
            elif func.type == "member_expression":
                receiver = self._text(ast, self._field(func, "object"))
                verb = self._text(ast, self._field(func, "property"))
                if not CLIENT_OBJECT_RE.match(receiver.split(".")[-1]):
                    continue
                client = receiver
                if verb.upper() in HTTP_METHODS:
                    method, url_node, options = verb.upper(), args[0], args[1:]
                elif verb == "request":
                    pairs = self._object_pairs(ast, args[0])
                    url_node = pairs.get("url")
                    method = literal_string(self._text(ast, pairs.get("method"))) if pairs.get("method") else "GET"
                    options = [args[0]]
                else:
                    continue
            elif func.type == "identifier" and CLIENT_OBJECT_RE.match(func_text) and args[0].type == "object":
                pairs = self._object_pairs(ast, args[0])
                url_node = pairs.get("url")
                method = literal_string(self._text(ast, pairs.get("method"))) if pairs.get("method") else "GET"
                options = [args[0]]
                client = func_text
            else:
                continue

            if url_node is None or not method or method.upper() not in HTTP_METHODS:
                continue
            url = self._url_of(ast, url_node)
            if url is None:
                continue
            calls.append(ApiCallInfo(
                method=method.upper(),
                url=normalize_call_url(url),
                location=node.location,
                client=client,
                has_auth=any(AUTH_MARKER_RE.search(self._text(ast, o)) for o in options),
                expected_response_type=self._expected_type(ast, ts_node),
                enclosing_function=self._enclosing_function_name(ast, ts_node),
            ))
        return calls

    def extract_endpoints(self, ast: AST) -> List[EndpointInfo]:
        endpoints = []
        for node in self._nodes_of(ast, frozenset({"call_expression"})):
            ts_node = node.handle
            func = self._field(ts_node, "function")
            if func is None or func.type != "member_expression":
                continue
            receiver = self._text(ast, self._field(func, "object"))
            verb = self._text(ast, self._field(func, "property"))
            if verb not in _ROUTE_VERBS or not SERVER_OBJECT_RE.match(receiver.split(".")[-1]):
                continue
            args_node = self._field(ts_node, "arguments")
            args = [a for a in args_node.named_children if a.type != "comment"] if args_node is not None else []
            if len(args) < 2 or args[0].type not in _STRING_TYPES:
                continue
            path = literal_string(self._text(ast, args[0]))
            if not path or not path.startswith("/"):
                continue

            middleware, handler = args[1:-1], args[-1]
            handler_name = self._text(ast, handler) if handler.type in ("identifier", "member_expression") else None
            statement = ts_node.parent if ts_node.parent is not None else ts_node
            doc = self._jsdoc(ast, statement) or ""
            endpoints.append(EndpointInfo(
                method="GET" if verb == "all" else verb.upper(),
                path=path,
                location=node.location,
                handler=handler_name,
                framework="express",
                requires_auth=any(AUTH_MIDDLEWARE_RE.search(self._text(ast, m)) for m in middleware),
                deprecated="@deprecated" in doc,
                response_type=self._handler_response_type(ast, handler),
            ))
        return endpoints

    def _handler_response_type(self, ast: AST, handler: Any) -> Optional[str]:
        """``(req, res: Response<User[]>) => ...`` declares ``User[]``."""
        if handler.type not in _FUNCTION_VALUES:
            return None
        for param in self._parameters(ast, handler):
            if param.type and param.type.startswith("Response<") and param.type.endswith(">"):
                return param.type[len("Response<"):-1]
        return None


class TypeScriptAdapter(_ECMAScriptAdapter):
    language = "typescript"
    extensions = frozenset({".ts", ".tsx", ".mts", ".cts"})
    grammar_module = "tree_sitter_typescript"

    def _load_languages(self) -> dict:
        from tree_sitter import Language

        mod = importlib.import_module(self.grammar_module)
        return {
            "default": Language(mod.language_typescript()),
            "tsx": Language(mod.language_tsx()),
        }

    def _grammar_for(self, path: Union[str, Path]) -> Any:
        if Path(str(path)).suffix.lower() == ".tsx":
            return self._languages["tsx"]
        return self._languages["default"]


class JavaScriptAdapter(_ECMAScriptAdapter):
    language = "javascript"
    extensions = frozenset({".js", ".jsx", ".mjs", ".cjs"})
    grammar_module = "tree_sitter_javascript"
    interface_types = frozenset()

    def extract_interfaces(self, ast: AST) -> List[InterfaceInfo]:
        return []
