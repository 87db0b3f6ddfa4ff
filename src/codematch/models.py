"""Value types shared by the registry, the extraction agents and the orchestrator."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from codematch.index.vocabulary import DEFAULT_VOCABULARY, Vocabulary

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def tokenize_name(name: str) -> List[str]:
    """Split a camelCase / PascalCase / snake_case name into lowercase words."""
    if not name:
        return []
    words: List[str] = []
    for part in re.split(r"[_\-\s.$]+", name):
        if not part:
            continue
        words.extend(w.lower() for w in _CAMEL_BOUNDARY.split(part) if w)
    return words


class EntityType(str, Enum):
    CLASS = "CLASS"
    METHOD = "METHOD"
    PACKAGE = "PACKAGE"
    FIELD = "FIELD"
    ANNOTATION = "ANNOTATION"


class MatchType(str, Enum):
    EXACT = "EXACT"
    PREFIX = "PREFIX"
    SUFFIX = "SUFFIX"
    PATTERN = "PATTERN"
    FUZZY = "FUZZY"
    SEMANTIC = "SEMANTIC"
    PHONETIC = "PHONETIC"
    ABBREVIATION = "ABBREVIATION"
    LLM_SUGGESTED = "LLM_SUGGESTED"


class ClassType(str, Enum):
    CLASS = "CLASS"
    INTERFACE = "INTERFACE"
    ENUM = "ENUM"
    ANNOTATION = "ANNOTATION"
    RECORD = "RECORD"

    @classmethod
    def from_labels(cls, labels) -> "ClassType":
        """Pick the class kind from the node labels of a graph record."""
        found = {str(label).upper() for label in labels or ()}
        for kind in (cls.INTERFACE, cls.ENUM, cls.ANNOTATION, cls.RECORD):
            if kind.value in found:
                return kind
        return cls.CLASS


# ============================================================================
# Entities
# ============================================================================


@dataclass(frozen=True)
class ClassEntity:
    """A class, interface, enum, annotation or record loaded from the graph."""

    id: str
    name: str
    full_name: str = ""
    package_name: str = ""
    file_path: str = ""
    description: str = ""
    class_type: ClassType = ClassType.CLASS
    super_class: Optional[str] = None
    interfaces: Tuple[str, ...] = ()
    modifiers: Tuple[str, ...] = ()
    annotations: Tuple[str, ...] = ()
    method_ids: Tuple[str, ...] = ()
    method_names: Tuple[str, ...] = ()
    name_tokens: Tuple[str, ...] = ()
    suffix: Optional[str] = None
    prefix: str = ""

    @classmethod
    def create(cls, id: str, name: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY, **fields) -> "ClassEntity":
        """Build a class entity, deriving name tokens, suffix and prefix."""
        suffix = vocabulary.class_suffix_of(name)
        prefix = name[: len(name) - len(suffix)] if suffix else name
        for key in ("interfaces", "modifiers", "annotations", "method_ids", "method_names"):
            if key in fields:
                fields[key] = tuple(fields[key] or ())
        return cls(
            id=id,
            name=name,
            name_tokens=tuple(tokenize_name(name)),
            suffix=suffix,
            prefix=prefix,
            **fields,
        )

    @property
    def is_interface(self) -> bool:
        return self.class_type == ClassType.INTERFACE

    @property
    def is_abstract(self) -> bool:
        return "abstract" in {m.lower() for m in self.modifiers}

    def matches_pattern(self, pattern: str) -> bool:
        """Match ``*Suffix``, ``Prefix*`` or a literal name."""
        if not pattern:
            return False
        if pattern.startswith("*"):
            return self.name.endswith(pattern[1:])
        if pattern.endswith("*"):
            return self.name.startswith(pattern[:-1])
        return self.name == pattern


@dataclass(frozen=True)
class MethodEntity:
    """A method (or constructor) contained in a class."""

    id: str
    name: str
    signature: str = ""
    class_name: str = ""
    package_name: str = ""
    return_type: str = ""
    is_constructor: bool = False
    description: str = ""
    modifiers: Tuple[str, ...] = ()
    parameter_types: Tuple[str, ...] = ()
    name_tokens: Tuple[str, ...] = ()
    prefix: Optional[str] = None
    method_type: str = "BUSINESS_LOGIC"

    @classmethod
    def create(cls, id: str, name: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY, **fields) -> "MethodEntity":
        """Build a method entity, deriving name tokens, verb prefix and method type."""
        prefix = vocabulary.verb_prefix_of(name)
        if fields.get("is_constructor"):
            method_type = "CONSTRUCTOR"
        else:
            method_type = vocabulary.method_type_of(prefix)
        for key in ("modifiers", "parameter_types"):
            if key in fields:
                fields[key] = tuple(fields[key] or ())
        return cls(
            id=id,
            name=name,
            name_tokens=tuple(tokenize_name(name)),
            prefix=prefix,
            method_type=method_type,
            **fields,
        )

    @property
    def action(self) -> str:
        """The part of the name after the verb prefix (``getUserName`` -> ``UserName``)."""
        if self.prefix:
            return self.name[len(self.prefix):]
        return self.name

    @property
    def is_getter(self) -> bool:
        return self.method_type == "GETTER"

    @property
    def is_setter(self) -> bool:
        return self.method_type == "SETTER"

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}.{self.name}" if self.class_name else self.name


@dataclass(frozen=True)
class PackageEntity:
    name: str
    class_names: Tuple[str, ...] = ()


# ============================================================================
# Matches and results
# ============================================================================


@dataclass(frozen=True)
class EntityMatch:
    """A scored candidate linking a query to one entity.

    Matches are immutable. Agents annotate a registry hit by building a
    new match with :meth:`with_updates`; confidence is always clamped to
    ``[0, 1]`` on construction.
    """

    entity_id: str
    entity_name: str
    entity_type: EntityType
    confidence: float
    match_type: MatchType
    match_reason: str = ""
    source: str = ""
    class_name: Optional[str] = None
    package_name: Optional[str] = None
    signature: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "confidence", max(0.0, min(1.0, float(self.confidence))))

    def with_updates(self, **changes) -> "EntityMatch":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.8

    @property
    def is_medium_confidence(self) -> bool:
        return 0.5 <= self.confidence < 0.8

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence < 0.5

    @property
    def display_name(self) -> str:
        if self.entity_type == EntityType.METHOD and self.class_name:
            return f"{self.class_name}.{self.entity_name}"
        return self.entity_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "entity_type": self.entity_type.value,
            "confidence": round(self.confidence, 4),
            "match_type": self.match_type.value,
            "match_reason": self.match_reason,
            "source": self.source,
            "class_name": self.class_name,
            "package_name": self.package_name,
            "signature": self.signature,
        }


@dataclass
class AgentResult:
    """Outcome of running one extraction agent for one query."""

    agent_name: str
    matches: List[EntityMatch] = field(default_factory=list)
    execution_time_ms: float = 0.0
    success: bool = True
    error_message: Optional[str] = None
    confidence: float = 0.0

    @classmethod
    def failure(cls, agent_name: str, error: str, execution_time_ms: float = 0.0) -> "AgentResult":
        return cls(
            agent_name=agent_name,
            matches=[],
            execution_time_ms=execution_time_ms,
            success=False,
            error_message=error,
        )


STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_ERROR = "error"


@dataclass
class ExtractedEntities:
    """Final bucketed result of an extraction.

    ``status`` distinguishes a search that found nothing (``empty``) from
    one that failed (``error``); the object itself is always returned.
    """

    classes: List[str] = field(default_factory=list)
    methods: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    terms: List[str] = field(default_factory=list)
    matches: List[EntityMatch] = field(default_factory=list)
    status: str = STATUS_EMPTY
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "ExtractedEntities":
        return cls(status=STATUS_EMPTY)

    @classmethod
    def failed(cls, error: str) -> "ExtractedEntities":
        return cls(status=STATUS_ERROR, error=error)

    def has_entities(self) -> bool:
        return bool(self.classes or self.methods or self.packages or self.terms)

    def all_entities(self) -> List[str]:
        return [*self.classes, *self.methods, *self.packages, *self.terms]

    def total_count(self) -> int:
        return len(self.classes) + len(self.methods) + len(self.packages) + len(self.terms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "error": self.error,
            "classes": list(self.classes),
            "methods": list(self.methods),
            "packages": list(self.packages),
            "terms": list(self.terms),
            "matches": [m.to_dict() for m in self.matches],
        }
