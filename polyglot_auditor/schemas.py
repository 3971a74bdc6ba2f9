"""Structural comparison of same-named data shapes declared in different languages."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from .entities import CrossLanguageEntity, CrossLanguageViolation
from .models import PropertyInfo

logger = logging.getLogger(__name__)

ANALYZER_NAME = "schema-consistency"

SCHEMA_ENTITY_TYPES = {"interface", "class", "struct", "schema"}

_AFFIX_RE = re.compile(r"request|response|dto|model|schema")

TYPE_MAP: Dict[str, Dict[str, str]] = {
    "typescript": {
        "string": "string",
        "number": "number",
        "bigint": "number",
        "boolean": "boolean",
        "Date": "datetime",
        "any": "any",
        "unknown": "any",
        "object": "object",
    },
    "go": {
        "string": "string",
        "int": "number",
        "int8": "number",
        "int16": "number",
        "int32": "number",
        "int64": "number",
        "uint": "number",
        "uint32": "number",
        "uint64": "number",
        "float32": "number",
        "float64": "number",
        "bool": "boolean",
        "time.Time": "datetime",
        "interface{}": "any",
        "any": "any",
    },
    "python": {
        "str": "string",
        "int": "number",
        "float": "number",
        "Decimal": "number",
        "bool": "boolean",
        "datetime": "datetime",
        "datetime.datetime": "datetime",
        "date": "datetime",
        "dict": "object",
        "Dict": "object",
        "Any": "any",
        "object": "any",
    },
}
TYPE_MAP["javascript"] = TYPE_MAP["typescript"]

_OPTIONAL_RE = re.compile(r"^Optional\[(.*)\]$")
_ARRAY_RES = (
    re.compile(r"^(.*)\[\]$"),
    re.compile(r"^\[\](.*)$"),
    re.compile(r"^(?:Array|ReadonlyArray)<(.*)>$"),
    re.compile(r"^(?:List|list|Sequence|Set|set|Tuple|tuple)\[(.*)\]$"),
)
_BARE_ARRAYS = {"list", "List", "Sequence", "set", "Set", "tuple", "Tuple", "Array", "ReadonlyArray", "[]"}
_NULLISH = {"None", "null", "undefined"}


def normalize_schema_name(name: str) -> str:
    """``UserResponseDTO`` and ``user_model`` both become ``user``."""
    return _AFFIX_RE.sub("", re.sub(r"[-_]", "", name.lower()))


def normalize_type(type_text: Optional[str], language: str) -> Optional[str]:
    """Map a language-specific field type onto a shared vocabulary."""
    if not type_text:
        return None
    text = type_text.strip().lstrip("*")
    optional = _OPTIONAL_RE.match(text)
    if optional:
        text = optional.group(1).strip()
    if "|" in text:
        members = [m.strip() for m in text.split("|") if m.strip() not in _NULLISH]
        if len(members) == 1:
            text = members[0]
    if text in _BARE_ARRAYS:
        return "array<any>"
    for pattern in _ARRAY_RES:
        match = pattern.match(text)
        if match:
            inner = normalize_type(match.group(1).split(",")[0], language)
            return f"array<{inner or 'any'}>"
    return TYPE_MAP.get(language, {}).get(text, text)


def _compatible(left: Optional[str], right: Optional[str]) -> bool:
    if left is None or right is None or "any" in (left, right):
        return True
    if "array<any>" in (left, right):
        return left.startswith("array<") and right.startswith("array<")
    return left == right


class SchemaConsistencyChecker:
    """Diffs the fields of same-named shapes found in different files or languages."""

    def __init__(self, strict_type_checking: bool = True, allow_additional_fields: bool = True) -> None:
        self.strict_type_checking = strict_type_checking
        self.allow_additional_fields = allow_additional_fields

    def group(self, entities: List[CrossLanguageEntity]) -> Dict[str, List[CrossLanguageEntity]]:
        groups: Dict[str, List[CrossLanguageEntity]] = {}
        for entity in entities:
            if entity.type not in SCHEMA_ENTITY_TYPES or not entity.properties:
                continue
            key = normalize_schema_name(entity.name)
            if key:
                groups.setdefault(key, []).append(entity)
        return groups

    def validate(self, entities: List[CrossLanguageEntity]) -> List[CrossLanguageViolation]:
        violations: List[CrossLanguageViolation] = []
        for name, members in self.group(entities).items():
            reference = members[0]
            for current in members[1:]:
                if (current.language, current.file) == (reference.language, reference.file):
                    continue
                violations.extend(self._compare(reference, current))
        logger.debug("Schema consistency check produced %d violation(s)", len(violations))
        return violations

    def _compare(
        self, reference: CrossLanguageEntity, current: CrossLanguageEntity,
    ) -> List[CrossLanguageViolation]:
        found: List[CrossLanguageViolation] = []
        ref_fields = {p.name: p for p in reference.properties}
        cur_fields = {p.name: p for p in current.properties}

        for field_name, ref_field in ref_fields.items():
            cur_field = cur_fields.get(field_name)
            if cur_field is None:
                if not ref_field.optional:
                    found.append(self._violation(
                        current, reference, "missing-field", "warning",
                        f"Field '{field_name}' of {reference.name} ({reference.language}) "
                        f"is missing from {current.name} ({current.language})",
                        fix=f"Add field '{field_name}' to {current.name}",
                        field_name=field_name,
                    ))
                continue
            found.extend(self._compare_types(field_name, ref_field, cur_field, reference, current))

        for field_name, cur_field in cur_fields.items():
            if field_name in ref_fields:
                continue
            if not cur_field.optional:
                found.append(self._violation(
                    reference, current, "missing-field", "warning",
                    f"Field '{field_name}' of {current.name} ({current.language}) "
                    f"is missing from {reference.name} ({reference.language})",
                    fix=f"Add field '{field_name}' to {reference.name}",
                    field_name=field_name,
                ))
            elif not self.allow_additional_fields:
                found.append(self._violation(
                    current, reference, "extra-field", "suggestion",
                    f"Field '{field_name}' exists only in {current.name} ({current.language})",
                    field_name=field_name,
                ))
        return found

    def _compare_types(
        self,
        field_name: str,
        ref_field: PropertyInfo,
        cur_field: PropertyInfo,
        reference: CrossLanguageEntity,
        current: CrossLanguageEntity,
    ) -> List[CrossLanguageViolation]:
        expected = normalize_type(ref_field.type, reference.language)
        actual = normalize_type(cur_field.type, current.language)
        if _compatible(expected, actual):
            return []
        severity = "critical" if self.strict_type_checking else "warning"
        return [self._violation(
            current, reference, "type-mismatch", severity,
            f"Type mismatch for field '{field_name}': expected {expected}, got {actual}",
            fix=f"Change field type to {expected} or update {reference.name}",
            field_name=field_name,
            details={"expectedType": expected, "actualType": actual},
        )]

    @staticmethod
    def _violation(
        target: CrossLanguageEntity,
        other: CrossLanguageEntity,
        rule: str,
        severity: str,
        message: str,
        fix: Optional[str] = None,
        field_name: Optional[str] = None,
        details: Optional[Dict[str, str]] = None,
    ) -> CrossLanguageViolation:
        payload = dict(details or {})
        if field_name:
            payload["field"] = field_name
        return CrossLanguageViolation(
            file=target.file,
            line=target.start_line,
            column=1,
            severity=severity,
            message=message,
            rule=rule,
            analyzer=ANALYZER_NAME,
            fix=fix,
            details=payload,
            cross_language_type=rule,
            related_files=list(dict.fromkeys([target.file, other.file])),
            related_languages=list(dict.fromkeys([target.language, other.language])),
        )
