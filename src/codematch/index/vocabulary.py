"""Naming vocabularies used to derive prefixes and suffixes of code entities.

The defaults reflect common Java naming conventions. All lists can be
overridden per repository through the ``vocabulary`` config section.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

DEFAULT_CLASS_SUFFIXES = (
    "Service", "Controller", "Manager", "Handler", "Engine", "Factory",
    "Builder", "Repository", "DAO", "Processor", "Provider", "Consumer",
    "Listener", "Observer", "Adapter", "Impl", "Helper", "Utils", "Config",
    "Exception",
)

# Verb prefixes recognised on method names, used for method-type classification
DEFAULT_VERB_PREFIXES = (
    "get", "set", "is", "has", "can", "should", "will",
    "create", "build", "make", "generate", "construct",
    "process", "handle", "execute", "run", "perform",
    "validate", "check", "verify", "confirm", "ensure",
    "find", "search", "query", "fetch", "retrieve",
    "save", "store", "persist", "update", "insert",
    "delete", "remove", "clear", "clean", "purge",
    "load", "reload", "refresh", "sync", "initialize",
)

# Prefixes indexed by the registry for prefix lookups over method names
DEFAULT_METHOD_PREFIXES = (
    "get", "set", "is", "has", "can", "should", "will",
    "create", "build", "make", "find", "search",
    "process", "handle", "execute", "run", "start", "stop",
    "load", "save", "delete", "remove", "add", "update",
    "validate", "check", "verify", "parse", "format", "convert", "transform",
)

DEFAULT_METHOD_SUFFIXES = (
    "Method", "Function", "Handler", "Processor", "Builder", "Factory",
    "Manager", "Service", "Helper", "Util", "Utils", "Tool", "Tools",
)

# Suffixes the pattern agent appends to domain terms when guessing class names
DEFAULT_PATTERN_SUFFIXES = ("Service", "Controller", "Manager", "Handler", "Repository")

METHOD_TYPE_BY_VERB = {
    "GETTER": ("get", "is", "has", "can", "should", "will"),
    "SETTER": ("set",),
    "CREATOR": ("create", "build", "make", "generate", "construct"),
    "PROCESSOR": ("process", "handle", "execute", "run", "perform"),
    "VALIDATOR": ("validate", "check", "verify", "confirm", "ensure"),
    "FINDER": ("find", "search", "query", "fetch", "retrieve"),
    "PERSISTER": ("save", "store", "persist", "update", "insert"),
    "DELETER": ("delete", "remove", "clear", "clean", "purge"),
}


@dataclass(frozen=True)
class Vocabulary:
    """Immutable bundle of the naming vocabularies."""

    class_suffixes: tuple = DEFAULT_CLASS_SUFFIXES
    verb_prefixes: tuple = DEFAULT_VERB_PREFIXES
    method_prefixes: tuple = DEFAULT_METHOD_PREFIXES
    method_suffixes: tuple = DEFAULT_METHOD_SUFFIXES
    pattern_suffixes: tuple = DEFAULT_PATTERN_SUFFIXES
    method_types: Dict[str, str] = field(default_factory=lambda: _invert(METHOD_TYPE_BY_VERB))

    @classmethod
    def from_config(cls, vocabulary_config: Optional[Dict[str, Any]]) -> "Vocabulary":
        """Build a vocabulary from the ``vocabulary`` config section."""
        cfg = vocabulary_config or {}
        return cls(
            class_suffixes=tuple(cfg.get("class_suffixes") or DEFAULT_CLASS_SUFFIXES),
            verb_prefixes=tuple(cfg.get("verb_prefixes") or DEFAULT_VERB_PREFIXES),
            method_prefixes=tuple(cfg.get("method_prefixes") or DEFAULT_METHOD_PREFIXES),
            method_suffixes=tuple(cfg.get("method_suffixes") or DEFAULT_METHOD_SUFFIXES),
            pattern_suffixes=tuple(cfg.get("pattern_suffixes") or DEFAULT_PATTERN_SUFFIXES),
        )

    def class_suffix_of(self, name: str) -> Optional[str]:
        """Return the first vocabulary suffix that ``name`` ends with."""
        for suffix in self.class_suffixes:
            if name.endswith(suffix):
                return suffix
        return None

    def verb_prefix_of(self, name: str) -> Optional[str]:
        """Return the verb prefix of a method name, if it has one.

        The prefix matches case-insensitively and must be followed by an
        uppercase letter or the end of the name (``getName``, ``get``), so
        ``settle`` is not read as ``set`` + ``tle``.
        """
        lower = name.lower()
        for prefix in self.verb_prefixes:
            if not lower.startswith(prefix):
                continue
            if len(name) == len(prefix) or name[len(prefix)].isupper():
                return prefix
        return None

    def method_type_of(self, prefix: Optional[str]) -> str:
        if prefix is None:
            return "BUSINESS_LOGIC"
        return self.method_types.get(prefix.lower(), "BUSINESS_LOGIC")


def _invert(mapping: Dict[str, tuple]) -> Dict[str, str]:
    return {verb: kind for kind, verbs in mapping.items() for verb in verbs}


DEFAULT_VOCABULARY = Vocabulary()
