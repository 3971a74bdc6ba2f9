"""API contract validation between client calls and server endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .entities import CrossLanguageEntity, CrossLanguageViolation
from .extractor import entity_api_calls
from .http_surface import coarse_type

logger = logging.getLogger(__name__)

ANALYZER_NAME = "api-contract"

MATCH_FULL = "full"
MATCH_PATH_ONLY = "path-only"


def _segments(path: str) -> List[str]:
    for sep in ("?", "#"):
        path = path.split(sep, 1)[0]
    return path.split("/")


def _is_wildcard(segment: str) -> bool:
    return segment.startswith(":") or (
        len(segment) >= 2 and segment.startswith("{") and segment.endswith("}")
    )


def path_matches(template: str, url: str) -> bool:
    """Match a route template against a concrete (or placeholder) request path.

    >>> path_matches("/users/:id", "/users/123")
    True
    >>> path_matches("/api/{resource}", "/api/")
    False
    """
    expected = _segments(template)
    actual = _segments(url)
    if len(expected) != len(actual):
        return False
    for want, got in zip(expected, actual):
        if _is_wildcard(want):
            if not got:
                return False
        elif want != got:
            return False
    return True


@dataclass
class ApiCallSite:
    """One outgoing request, together with the entity it was found in."""
    entity: CrossLanguageEntity
    method: str
    url: str
    line: int
    column: int
    has_auth: bool = False
    expected_response_type: Optional[str] = None


def endpoint_response_kind(endpoint: CrossLanguageEntity) -> Optional[str]:
    contract = endpoint.api_contract
    if contract is not None and contract.response is not None:
        return contract.response.type
    return coarse_type(endpoint.return_type)


def endpoint_requires_auth(endpoint: CrossLanguageEntity) -> bool:
    contract = endpoint.api_contract
    return contract is not None and contract.authentication is not None


def endpoint_deprecated(endpoint: CrossLanguageEntity) -> bool:
    contract = endpoint.api_contract
    return contract is not None and contract.deprecated


class ContractValidator:
    """Pairs every API call with an endpoint and checks the pair."""

    def extract_endpoints(self, entities: List[CrossLanguageEntity]) -> List[CrossLanguageEntity]:
        return [e for e in entities if e.type == "endpoint" and e.api_endpoint]

    def extract_api_calls(self, entities: List[CrossLanguageEntity]) -> List[ApiCallSite]:
        sites = []
        for entity in entities:
            for call in entity_api_calls(entity):
                sites.append(ApiCallSite(
                    entity=entity,
                    method=(call.get("method") or "GET").upper(),
                    url=call.get("url") or "/",
                    line=call.get("line") or entity.start_line,
                    column=call.get("column") or 1,
                    has_auth=bool(call.get("has_auth")),
                    expected_response_type=call.get("expected_response_type"),
                ))
        return sites

    def pair(
        self, entities: List[CrossLanguageEntity],
    ) -> List[Tuple[ApiCallSite, Optional[CrossLanguageEntity], Optional[str]]]:
        """Return ``(call, endpoint, match_kind)``; endpoint is None when nothing matches."""
        endpoints = self.extract_endpoints(entities)
        pairs = []
        for call in self.extract_api_calls(entities):
            path_hits = [e for e in endpoints if path_matches(e.api_endpoint, call.url)]
            full = next((e for e in path_hits if (e.api_method or "").upper() == call.method), None)
            if full is not None:
                pairs.append((call, full, MATCH_FULL))
            elif path_hits:
                pairs.append((call, path_hits[0], MATCH_PATH_ONLY))
            else:
                pairs.append((call, None, None))
        return pairs

    def validate(self, entities: List[CrossLanguageEntity]) -> List[CrossLanguageViolation]:
        violations: List[CrossLanguageViolation] = []
        for call, endpoint, kind in self.pair(entities):
            if endpoint is None:
                violations.append(self._violation(
                    call, None, "missing-endpoint", "warning",
                    f"API call to {call.method} {call.url} has no matching endpoint",
                    fix="Ensure the endpoint exists or update the API call",
                ))
                continue

            expected_method = (endpoint.api_method or "").upper()
            if kind == MATCH_PATH_ONLY:
                violations.append(self._violation(
                    call, endpoint, "method-mismatch", "critical",
                    f"HTTP method mismatch: call uses {call.method}, "
                    f"endpoint {endpoint.api_endpoint} expects {expected_method}",
                    fix=f"Change the API call method to {expected_method}",
                    details={"expectedMethod": expected_method, "actualMethod": call.method},
                ))
                continue

            provided = endpoint_response_kind(endpoint)
            expected = coarse_type(call.expected_response_type)
            if provided and expected and provided != expected:
                violations.append(self._violation(
                    call, endpoint, "type-mismatch", "critical",
                    f"Type mismatch: endpoint returns {provided}, call expects {expected}",
                    fix=f"Update the API call to handle {provided} response instead of {expected}",
                    details={"expectedType": provided, "actualType": expected},
                ))

            if endpoint_deprecated(endpoint):
                violations.append(self._violation(
                    call, endpoint, "deprecated-endpoint", "warning",
                    f"Using deprecated API endpoint: {endpoint.name}",
                    fix="Update to use the current API version",
                ))

            if endpoint_requires_auth(endpoint) and not call.has_auth:
                auth_type = endpoint.api_contract.authentication.type
                violations.append(self._violation(
                    call, endpoint, "auth-mismatch", "critical",
                    f"API call missing required authentication for endpoint {endpoint.name}",
                    fix=f"Add {auth_type} authentication to the API call",
                ))

        logger.debug("Contract validation produced %d violation(s)", len(violations))
        return violations

    def summarize(self, entities: List[CrossLanguageEntity]) -> List[Dict[str, Any]]:
        """Per-endpoint contract and usage report."""
        usage: Dict[str, Dict[str, Any]] = {}
        for endpoint in self.extract_endpoints(entities):
            usage[endpoint.id] = {
                "endpoint": endpoint.api_endpoint,
                "method": endpoint.api_method,
                "language": endpoint.language,
                "file": endpoint.file,
                "line": endpoint.start_line,
                "response_type": endpoint_response_kind(endpoint),
                "requires_auth": endpoint_requires_auth(endpoint),
                "deprecated": endpoint_deprecated(endpoint),
                "callers": [],
                "mismatched_callers": 0,
            }
        for call, endpoint, kind in self.pair(entities):
            if endpoint is None:
                continue
            entry = usage[endpoint.id]
            entry["callers"].append(f"{call.entity.file}:{call.line}")
            if kind != MATCH_FULL:
                entry["mismatched_callers"] += 1
        return list(usage.values())

    @staticmethod
    def _violation(
        call: ApiCallSite,
        endpoint: Optional[CrossLanguageEntity],
        rule: str,
        severity: str,
        message: str,
        fix: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> CrossLanguageViolation:
        files = [call.entity.file]
        languages = [call.entity.language]
        if endpoint is not None:
            if endpoint.file not in files:
                files.append(endpoint.file)
            if endpoint.language not in languages:
                languages.append(endpoint.language)
        return CrossLanguageViolation(
            file=call.entity.file,
            line=call.line,
            column=call.column,
            severity=severity,
            message=message,
            rule=rule,
            analyzer=ANALYZER_NAME,
            fix=fix,
            details=details or {},
            cross_language_type=rule,
            related_files=files,
            related_languages=languages,
        )
