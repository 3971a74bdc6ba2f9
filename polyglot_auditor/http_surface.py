"""Shared vocabulary for HTTP endpoint and client-call detection."""

from __future__ import annotations

import re
from typing import Optional

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}

# Receivers that declare routes: app.get(...), router.post(...), bp.route(...)
SERVER_OBJECT_RE = re.compile(
    r"^(app|application|server|fastify|bp|blueprint|api_router|\w*[Rr]outer)$"
)
# Receivers that issue requests: axios.get(...), requests.post(...)
CLIENT_OBJECT_RE = re.compile(
    r"^(axios|http|https|httpClient|http_client|api|apiClient|api_client|client|"
    r"request|requests|httpx|session|ky|\$http|fetcher|superagent)$"
)

AUTH_MARKER_RE = re.compile(
    r"(?i)(authorization|bearer|token|auth|api[-_]?key|credentials|cookie)"
)
AUTH_MIDDLEWARE_RE = re.compile(
    r"(?i)(auth|jwt|token|passport|login|protect|guard|verify|session|current_user|security|oauth)"
)
AUTH_DECORATOR_RE = re.compile(
    r"(?i)^(login_required|jwt_required|auth_required|requires_auth|token_required|"
    r"authenticated|permission_required|roles_required|fresh_jwt_required)\b"
)

_SCHEME_HOST_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/]+")
_TEMPLATE_SUB_RE = re.compile(r"\$\{[^}]*\}")
_FSTRING_SUB_RE = re.compile(r"\{[^{}]*\}")
_FLASK_PARAM_RE = re.compile(r"<(?:[^:<>]+:)?([^<>]+)>")

PLACEHOLDER = ":param"


def literal_string(text: str) -> Optional[str]:
    """Strip quotes (and Python string prefixes) from a literal's source text."""
    text = text.strip()
    match = re.match(r"^[rRbBuUfF]{0,2}(\"\"\"|'''|\"|'|`)(.*)\1$", text, re.DOTALL)
    if not match:
        return None
    return match.group(2)


def normalize_route_path(path: str) -> str:
    """Framework route syntax to a matchable template (Flask ``<id>`` -> ``{id}``)."""
    return _FLASK_PARAM_RE.sub(lambda m: "{" + m.group(1) + "}", path)


def normalize_call_url(url: str, interpolation: str = "js") -> str:
    """Turn a client URL literal into a path with placeholder segments.

    ``https://host/api/users/${id}`` -> ``/api/users/:param``
    """
    if interpolation == "js":
        url = _TEMPLATE_SUB_RE.sub(PLACEHOLDER, url)
    else:
        url = _FSTRING_SUB_RE.sub(PLACEHOLDER, url)
    url = _SCHEME_HOST_RE.sub("", url)
    # A leading placeholder is a base URL we cannot resolve.
    while url.startswith(PLACEHOLDER):
        url = url[len(PLACEHOLDER):]
    if not url.startswith("/"):
        url = "/" + url
    return url


def looks_like_url(text: str) -> bool:
    return text.startswith("/") or "://" in text or text.startswith("${") or text.startswith("{")


_ARRAY_PREFIX_RE = re.compile(
    r"^(Array|ReadonlyArray|List|list|Sequence|Iterable|Tuple|tuple|Set|set|FrozenSet|frozenset)(?:\s*[<\[]|$)"
)
_WRAPPER_RE = re.compile(
    r"^(Promise|Optional|AxiosResponse|Response|Observable|Awaitable|Coroutine)\s*[<\[](.*)[>\]]$"
)
_PRIMITIVES = {
    "string": "string", "str": "string",
    "number": "number", "int": "number", "float": "number", "bigint": "number",
    "boolean": "boolean", "bool": "boolean",
    "void": "null", "None": "null", "null": "null", "undefined": "null",
}
_UNKNOWN = {"any", "unknown", "Any", "object", "T"}


def coarse_type(type_text: Optional[str]) -> Optional[str]:
    """Classify a declared type as array, object, or a primitive.

    Returns ``None`` when the type tells us nothing (``any``, missing).
    """
    if not type_text:
        return None
    text = type_text.strip().lstrip(":").strip()
    for _ in range(4):
        wrapped = _WRAPPER_RE.match(text)
        if not wrapped:
            break
        text = wrapped.group(2).strip()
    if "|" in text:
        parts = [p.strip() for p in text.split("|") if p.strip() not in ("None", "null", "undefined")]
        if len(parts) == 1:
            text = parts[0]
    if not text or text in _UNKNOWN:
        return None
    if text.endswith("[]") or text.startswith("[]") or _ARRAY_PREFIX_RE.match(text):
        return "array"
    if text in _PRIMITIVES:
        return _PRIMITIVES[text]
    return "object"
