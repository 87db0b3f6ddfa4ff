"""Typo-tolerant matching: edit distance, phonetics, abbreviations and common misspellings."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from codematch.agents.base import ExtractionAgent
from codematch.index.registry import EntityRegistry
from codematch.models import EntityMatch, MatchType
from codematch.query.context import QueryContext
from codematch.semantic.index import SemanticEntityIndex

logger = logging.getLogger(__name__)

MAX_EDIT_DISTANCE = 2
MIN_FUZZY_CONFIDENCE = 0.4
MAX_FUZZY_RESULTS = 20
MAX_TYPO_CANDIDATES = 50

KEYBOARD_NEIGHBORS = {
    "1": "2q", "2": "13qw", "3": "24we", "4": "35er", "5": "46rt",
    "6": "57ty", "7": "68yu", "8": "79ui", "9": "80io", "0": "9op",
    "q": "12wa", "w": "23qeas", "e": "34wrds", "r": "45etdf", "t": "56ryfg",
    "y": "67tugh", "u": "78yihj", "i": "89uojk", "o": "90ipkl", "p": "0ol",
    "a": "qwsz", "s": "awedxz", "d": "serfcx", "f": "drtgvc", "g": "ftyhbv",
    "h": "gyujnb", "j": "huikmn", "k": "jiolm", "l": "kop",
    "z": "asx", "x": "zsdc", "c": "xdfv", "v": "cfgb", "b": "vghn",
    "n": "bhjm", "m": "njk",
}

INSERTABLE = "abcdefghijklmnopqrstuvwxyz0123456789"

COMMON_MISSPELLINGS = {
    "recieve": "receive",
    "seperator": "separator",
    "occured": "occurred",
    "persistance": "persistence",
    "accessable": "accessible",
    "dependancy": "dependency",
    "existance": "existence",
    "referance": "reference",
    "perfomance": "performance",
    "managment": "management",
}

MATCH_TYPE_PRIORITY = {
    MatchType.EXACT: 1,
    MatchType.PREFIX: 2,
    MatchType.SUFFIX: 2,
    MatchType.ABBREVIATION: 3,
    MatchType.PHONETIC: 4,
    MatchType.FUZZY: 5,
    MatchType.SEMANTIC: 6,
}


class FuzzyMatchingAgent(ExtractionAgent):
    """Recovers entities from misspelled or abbreviated query terms."""

    name = "FuzzyMatchingAgent"

    def __init__(
        self,
        registry: EntityRegistry,
        semantic_index: Optional[SemanticEntityIndex] = None,
        max_edit_distance: int = MAX_EDIT_DISTANCE,
        phonetic_matching: bool = True,
        abbreviation_expansion: bool = True,
        typo_correction: bool = True,
    ):
        super().__init__(registry)
        self.semantic_index = semantic_index or SemanticEntityIndex()
        self.max_edit_distance = max_edit_distance
        self.phonetic_matching = phonetic_matching
        self.abbreviation_expansion = abbreviation_expansion
        self.typo_correction = typo_correction

    def can_handle(self, context: QueryContext) -> bool:
        return bool(context.identifier_tokens()) or any(t.confidence < 0.8 for t in context.tokens)

    def get_handling_confidence(self, context: QueryContext) -> float:
        low_confidence_tokens = sum(1 for t in context.tokens if t.confidence < 0.7)
        confidence = 0.3 + low_confidence_tokens * 0.2
        if context.confidence > 0.9:
            confidence *= 0.5
        return min(1.0, confidence)

    def extract(self, context: QueryContext) -> List[EntityMatch]:
        matches: List[EntityMatch] = []
        matches.extend(self._edit_distance_matches(context))
        if self.phonetic_matching:
            matches.extend(self._phonetic_matches(context))
        if self.abbreviation_expansion:
            matches.extend(self._abbreviation_matches(context))
        if self.typo_correction:
            matches.extend(self._keyboard_typo_matches(context))
        matches.extend(self._partial_matches(context))
        matches.extend(self._misspelling_matches(context))
        return filter_and_rank(matches)

    # ========================================================================
    # Strategies
    # ========================================================================

    def _fuzzy_terms(self, context: QueryContext, min_length: int = 3) -> List[str]:
        return [t.value for t in context.identifier_tokens() if len(t.value) >= min_length]

    def _edit_distance_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for term in self._fuzzy_terms(context):
            for match in self.registry.find_similar(term, self.max_edit_distance):
                confidence = edit_distance_confidence(term.lower(), match.entity_name.lower())
                if confidence >= MIN_FUZZY_CONFIDENCE:
                    matches.append(
                        match.with_updates(
                            source=self.name,
                            match_type=MatchType.FUZZY,
                            match_reason=f"edit distance fuzzy match for: {term}",
                            confidence=confidence,
                        )
                    )
        return matches

    def _phonetic_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for term in self._fuzzy_terms(context):
            for candidate in sorted(self.semantic_index.find_phonetic_matches(term)):
                if candidate == term:
                    continue
                matches.extend(
                    self.annotate(
                        self.registry.find_exact_matches(candidate),
                        f"phonetic match for: {term} -> {candidate}",
                        confidence=phonetic_confidence(term, candidate),
                        match_type=MatchType.PHONETIC,
                    )
                )
        return matches

    def _abbreviation_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.tokens:
            term = token.value
            if not 2 <= len(term) <= 6:
                continue
            for expansion in sorted(self.semantic_index.expand_abbreviation(term)):
                if expansion == term:
                    continue
                for match in self.registry.find_entities_with_term(expansion):
                    matches.append(
                        match.with_updates(
                            source=self.name,
                            match_type=MatchType.ABBREVIATION,
                            match_reason=f"abbreviation expansion: {term} -> {expansion}",
                            confidence=abbreviation_confidence(term, expansion, match.entity_name),
                        )
                    )
        return matches

    def _keyboard_typo_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for term in self._fuzzy_terms(context):
            for correction in generate_typo_corrections(term)[:MAX_TYPO_CANDIDATES]:
                hits = self.registry.find_exact_matches_ignore_case(correction)
                if not hits:
                    continue
                matches.extend(
                    self.annotate(
                        hits,
                        f"keyboard typo correction: {term} -> {correction}",
                        confidence=typo_confidence(term, correction),
                        match_type=MatchType.FUZZY,
                    )
                )
        return matches

    def _partial_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for term in self._fuzzy_terms(context, min_length=4):
            for match in self.registry.find_entities_with_term(term):
                confidence = partial_match_confidence(term, match.entity_name)
                if confidence >= MIN_FUZZY_CONFIDENCE:
                    matches.append(
                        match.with_updates(
                            source=self.name,
                            match_type=MatchType.FUZZY,
                            match_reason=f"partial substring match for: {term}",
                            confidence=confidence,
                        )
                    )
        return matches

    def _misspelling_matches(self, context: QueryContext) -> List[EntityMatch]:
        matches = []
        for token in context.tokens:
            term = token.value.lower()
            correction = COMMON_MISSPELLINGS.get(term)
            if correction is None:
                continue
            for match in self.registry.find_entities_with_term(correction):
                matches.append(
                    match.with_updates(
                        source=self.name,
                        match_type=MatchType.FUZZY,
                        match_reason=f"misspelling correction: {term} -> {correction}",
                        confidence=misspelling_confidence(correction, match.entity_name),
                    )
                )
        return matches


# ============================================================================
# Scoring
# ============================================================================


def filter_and_rank(matches: List[EntityMatch]) -> List[EntityMatch]:
    """Drop weak matches, keep the best per (entity, match type), rank and cap."""
    best: Dict[Tuple[str, MatchType], EntityMatch] = {}
    for match in matches:
        if match.confidence < MIN_FUZZY_CONFIDENCE:
            continue
        key = (match.entity_id, match.match_type)
        current = best.get(key)
        if current is None or match.confidence > current.confidence:
            best[key] = match
    ranked = sorted(
        best.values(),
        key=lambda m: (-m.confidence, MATCH_TYPE_PRIORITY.get(m.match_type, 10)),
    )
    return ranked[:MAX_FUZZY_RESULTS]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _common_prefix_length(a: str, b: str) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def _common_suffix_length(a: str, b: str) -> int:
    return _common_prefix_length(a[::-1], b[::-1])


def edit_distance_confidence(query: str, target: str) -> float:
    if query == target:
        return 1.0
    max_len = max(len(query), len(target))
    if max_len == 0:
        return 0.0
    distance = Levenshtein.distance(query, target)
    confidence = 1.0 - distance / max_len
    if min(len(query), len(target)) > 6:
        confidence = min(1.0, confidence + 0.05)
    if abs(len(query) - len(target)) > max_len / 2:
        confidence *= 0.7
    if distance > max_len / 2:
        confidence *= 0.5
    return _clamp(confidence)


def phonetic_confidence(original: str, candidate: str) -> float:
    if original == candidate:
        return 1.0
    confidence = 0.6
    length_diff = abs(len(original) - len(candidate))
    if length_diff <= 1:
        confidence += 0.1
    elif length_diff > 3:
        confidence -= 0.2
    a, b = original.lower(), candidate.lower()
    if _common_prefix_length(a, b) > 2:
        confidence += 0.1
    if _common_suffix_length(a, b) > 2:
        confidence += 0.1
    return _clamp(confidence)


def abbreviation_confidence(abbreviation: str, expansion: str, entity_name: str) -> float:
    confidence = 0.7
    if expansion.lower() in entity_name.lower():
        confidence += len(expansion) / len(entity_name) * 0.2
    else:
        confidence -= 0.3
    if 0.2 <= len(abbreviation) / len(expansion) <= 0.6:
        confidence += 0.1
    return _clamp(confidence)


def typo_confidence(original: str, correction: str) -> float:
    if original == correction:
        return 1.0
    distance = Levenshtein.distance(original.lower(), correction.lower())
    confidence = {1: 0.7, 2: 0.6}.get(distance, 0.5)
    if max(len(original), len(correction)) > 6:
        confidence += 0.1
    if abs(len(original) - len(correction)) > 2:
        confidence -= 0.2
    return _clamp(confidence)


def partial_match_confidence(query: str, target: str) -> float:
    if query == target:
        return 1.0
    q, t = query.lower(), target.lower()
    if q not in t:
        return 0.0
    ratio = len(query) / len(target)
    confidence = 0.3 + 0.7 * ratio
    if t.startswith(q):
        confidence = min(1.0, confidence + 0.2)
    elif t.endswith(q):
        confidence = min(1.0, confidence + 0.15)
    if ratio < 0.2:
        confidence *= 0.8
    return _clamp(confidence)


def misspelling_confidence(correction: str, entity_name: str) -> float:
    confidence = 0.8
    if correction.lower() in entity_name.lower():
        confidence = min(1.0, confidence + len(correction) / len(entity_name) * 0.1)
    else:
        confidence -= 0.3
    return _clamp(confidence)


def generate_typo_corrections(term: str) -> List[str]:
    """Single-edit variants of ``term``, most plausible typos first.

    Order: adjacent transpositions, deletions, keyboard-neighbour
    substitutions, insertions. Variants shorter than two characters or
    equal to the term (ignoring case) are dropped.
    """
    if len(term) < 2:
        return []
    variants: List[str] = []

    for i in range(len(term) - 1):
        variants.append(term[:i] + term[i + 1] + term[i] + term[i + 2:])
    for i in range(len(term)):
        variants.append(term[:i] + term[i + 1:])
    for i, ch in enumerate(term):
        for neighbor in KEYBOARD_NEIGHBORS.get(ch.lower(), ""):
            if ch.isupper():
                neighbor = neighbor.upper()
            variants.append(term[:i] + neighbor + term[i + 1:])
    for i in range(len(term) + 1):
        for ch in INSERTABLE:
            variants.append(term[:i] + ch + term[i:])

    seen = set()
    result = []
    lower = term.lower()
    for variant in variants:
        if len(variant) < 2 or variant.lower() == lower or variant in seen:
            continue
        seen.add(variant)
        result.append(variant)
    return result
