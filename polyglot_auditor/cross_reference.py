"""Infer confidence-scored references between entities, across languages."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple

from .contracts import ContractValidator, MATCH_FULL
from .entities import CrossLanguageEntity, CrossReference

logger = logging.getLogger(__name__)

# Confidence by how close the resolved target is to the source.
CALL_SAME_FILE = 0.9
CALL_SAME_LANGUAGE = 0.7
CALL_CROSS_LANGUAGE = 0.4
HERITAGE_SAME_LANGUAGE = 0.9
HERITAGE_CROSS_LANGUAGE = 0.6
IMPORT_RESOLVED = 0.95
API_METHOD_MATCH = 0.9
API_PATH_ONLY = 0.6

_TYPE_ARGS_RE = re.compile(r"[<\[(].*$")
_SOURCE_EXT_RE = re.compile(r"\.(py|pyi|ts|tsx|mts|cts|js|jsx|mjs|cjs|go)$")


def _base_name(text: str) -> str:
    """``pkg.Base[T]`` / ``Base<T>`` -> ``Base``."""
    return _TYPE_ARGS_RE.sub("", text.strip()).split(".")[-1]


def _module_key(source: str) -> Tuple[str, ...]:
    """Path-like key for an import source: ``../models/user.ts`` and ``app.models.user`` end the same."""
    cleaned = _SOURCE_EXT_RE.sub("", source.strip())
    if "/" in cleaned:
        parts = [p for p in cleaned.split("/") if p not in ("", ".", "..")]
    else:
        parts = [p for p in cleaned.split(".") if p]
    return tuple(parts)


class CrossReferenceBuilder:
    """Resolves call, heritage, import and HTTP references by name.

    Unresolvable names are dropped rather than emitted as dangling edges.
    Resolved ``calls`` edges are mirrored onto the entities' ``calls`` and
    ``called_by`` lists.
    """

    def __init__(self, contracts: Optional[ContractValidator] = None) -> None:
        self.contracts = contracts or ContractValidator()

    def build(self, entities: List[CrossLanguageEntity]) -> List[CrossReference]:
        by_id = {e.id: e for e in entities}
        references: List[CrossReference] = []
        references.extend(self._call_references(entities))
        references.extend(self._heritage_references(entities))
        references.extend(self._import_references(entities))
        references.extend(self._api_references(entities))

        unique: Dict[Tuple[str, str, str], CrossReference] = {}
        for ref in references:
            key = (ref.source_id, ref.target_id, ref.type)
            if key not in unique or unique[key].confidence < ref.confidence:
                unique[key] = ref
        resolved = list(unique.values())

        for ref in resolved:
            if ref.type != "calls":
                continue
            source, target = by_id[ref.source_id], by_id[ref.target_id]
            if target.id not in source.calls:
                source.calls.append(target.id)
            if source.id not in target.called_by:
                target.called_by.append(source.id)

        cross = sum(1 for r in resolved if r.is_cross_language)
        logger.info("Built %d cross-reference(s), %d across languages", len(resolved), cross)
        return resolved

    # ------------------------------------------------------------------
    # calls
    # ------------------------------------------------------------------

    def _call_references(self, entities: List[CrossLanguageEntity]) -> Iterable[CrossReference]:
        functions: Dict[str, List[CrossLanguageEntity]] = {}
        classes: Dict[str, List[CrossLanguageEntity]] = {}
        for entity in entities:
            if entity.type == "function":
                functions.setdefault(entity.name, []).append(entity)
            elif entity.type in ("class", "schema", "struct"):
                classes.setdefault(entity.name, []).append(entity)

        for entity in entities:
            for call_name in entity.metadata.get("call_names", []):
                name = call_name.split(".")[-1]
                candidates = functions.get(name) or classes.get(name)
                if not candidates:
                    continue
                target, confidence = self._closest(entity, candidates)
                if target is None or target.id == entity.id:
                    continue
                yield CrossReference(
                    source_id=entity.id,
                    target_id=target.id,
                    type="calls",
                    source_language=entity.language,
                    target_language=target.language,
                    confidence=confidence,
                    protocol="direct",
                    metadata={"name": call_name},
                )

    @staticmethod
    def _closest(
        source: CrossLanguageEntity, candidates: List[CrossLanguageEntity],
    ) -> Tuple[Optional[CrossLanguageEntity], float]:
        same_class = [
            c for c in candidates
            if c.file == source.file and source.class_name and c.class_name == source.class_name
            and c.id != source.id
        ]
        if same_class:
            return same_class[0], CALL_SAME_FILE
        same_file = [c for c in candidates if c.file == source.file and c.id != source.id]
        if same_file:
            return same_file[0], CALL_SAME_FILE
        same_language = [c for c in candidates if c.language == source.language and c.id != source.id]
        if same_language:
            return same_language[0], CALL_SAME_LANGUAGE
        others = [c for c in candidates if c.id != source.id]
        if others:
            return others[0], CALL_CROSS_LANGUAGE
        return None, 0.0

    # ------------------------------------------------------------------
    # extends / implements
    # ------------------------------------------------------------------

    def _heritage_references(self, entities: List[CrossLanguageEntity]) -> Iterable[CrossReference]:
        types: Dict[str, List[CrossLanguageEntity]] = {}
        for entity in entities:
            if entity.type in ("class", "interface", "schema", "struct"):
                types.setdefault(entity.name, []).append(entity)

        for entity in entities:
            for ref_type, names in (("extends", entity.extends), ("implements", entity.implements)):
                for raw in names:
                    candidates = [c for c in types.get(_base_name(raw), []) if c.id != entity.id]
                    if not candidates:
                        continue
                    same = [c for c in candidates if c.language == entity.language]
                    target = same[0] if same else candidates[0]
                    yield CrossReference(
                        source_id=entity.id,
                        target_id=target.id,
                        type=ref_type,
                        source_language=entity.language,
                        target_language=target.language,
                        confidence=HERITAGE_SAME_LANGUAGE if same else HERITAGE_CROSS_LANGUAGE,
                        protocol="direct",
                        metadata={"name": raw},
                    )

    # ------------------------------------------------------------------
    # imports
    # ------------------------------------------------------------------

    def _import_references(self, entities: List[CrossLanguageEntity]) -> Iterable[CrossReference]:
        modules = [e for e in entities if e.type == "module"]
        by_stem: Dict[str, List[CrossLanguageEntity]] = {}
        for module in modules:
            by_stem.setdefault(module.name, []).append(module)

        for module in modules:
            for imp in module.metadata.get("imports", []):
                key = _module_key(imp.get("source", ""))
                if not key:
                    continue
                candidates = [
                    c for c in by_stem.get(key[-1], [])
                    if c.id != module.id and c.language == module.language
                ]
                if len(candidates) > 1:
                    # disambiguate on the longest matching path suffix
                    candidates.sort(key=lambda c: -self._suffix_overlap(key, c.file))
                if not candidates:
                    continue
                target = candidates[0]
                yield CrossReference(
                    source_id=module.id,
                    target_id=target.id,
                    type="imports",
                    source_language=module.language,
                    target_language=target.language,
                    confidence=IMPORT_RESOLVED,
                    protocol="direct",
                    metadata={"source": imp.get("source")},
                )

    @staticmethod
    def _suffix_overlap(key: Tuple[str, ...], file: str) -> int:
        parts = PurePosixPath(_SOURCE_EXT_RE.sub("", file.replace("\\", "/"))).parts
        overlap = 0
        for want, have in zip(reversed(key), reversed(parts)):
            if want != have:
                break
            overlap += 1
        return overlap

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _api_references(self, entities: List[CrossLanguageEntity]) -> Iterable[CrossReference]:
        for call, endpoint, kind in self.contracts.pair(entities):
            if endpoint is None:
                continue
            yield CrossReference(
                source_id=call.entity.id,
                target_id=endpoint.id,
                type="api-call",
                source_language=call.entity.language,
                target_language=endpoint.language,
                confidence=API_METHOD_MATCH if kind == MATCH_FULL else API_PATH_ONLY,
                protocol="http",
                metadata={"method": call.method, "url": call.url, "line": call.line},
            )
