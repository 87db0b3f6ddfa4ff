"""
In-memory registry of code entities with exact, prefix, suffix, compound and
fuzzy lookups.

All derived indexes live in one immutable :class:`RegistrySnapshot`. A refresh
builds a complete new snapshot off to the side and installs it with a single
reference assignment, so concurrent readers always see either the old or the
new snapshot in full.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import neo4j

from codematch.index.bktree import BKTree
from codematch.index.trie import Trie
from codematch.index.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from codematch.models import (
    ClassEntity,
    ClassType,
    EntityMatch,
    EntityType,
    MatchType,
    MethodEntity,
    PackageEntity,
    tokenize_name,
)

logger = logging.getLogger(__name__)

REGISTRY_SOURCE = "EntityRegistry"
DEFAULT_REFRESH_INTERVAL = 3600


def package_id(name: str) -> str:
    return f"package:{name}"


def prefix_confidence(fragment: str, name: str) -> float:
    """Score a prefix/suffix hit: 0.7 floor, rising with the fragment's share of the name."""
    if not name:
        return 0.0
    return min(1.0, 0.7 + 0.3 * (len(fragment) / len(name)))


def similarity_confidence(query: str, candidate: str, distance: int) -> float:
    """Score a fuzzy hit from its edit distance.

    Distance 0 scores 1.0, distance 1 at least 0.8, distance 2 at least 0.6,
    otherwise ``1 - distance / max_len``. A length difference above half the
    longer string costs 30%.
    """
    max_len = max(len(query), len(candidate))
    if max_len == 0:
        return 0.0
    confidence = 1.0 - distance / max_len
    if distance == 0:
        confidence = 1.0
    elif distance == 1:
        confidence = max(confidence, 0.8)
    elif distance == 2:
        confidence = max(confidence, 0.6)

    if abs(len(query) - len(candidate)) > max_len // 2:
        confidence *= 0.7
    return max(0.0, min(1.0, confidence))


# ============================================================================
# Snapshot
# ============================================================================


@dataclass
class RegistrySnapshot:
    """Every collection and derived index of one registry load.

    Built once by :func:`build_snapshot` and never mutated afterwards.
    """

    classes: Dict[str, ClassEntity] = field(default_factory=dict)
    methods: Dict[str, List[MethodEntity]] = field(default_factory=dict)
    packages: Dict[str, PackageEntity] = field(default_factory=dict)
    by_id: Dict[str, Any] = field(default_factory=dict)
    class_suffix_index: Dict[str, List[str]] = field(default_factory=dict)
    class_prefix_index: Dict[str, List[str]] = field(default_factory=dict)
    method_prefix_index: Dict[str, List[str]] = field(default_factory=dict)
    method_suffix_index: Dict[str, List[str]] = field(default_factory=dict)
    method_action_index: Dict[str, List[str]] = field(default_factory=dict)
    compound_index: Dict[str, List[str]] = field(default_factory=dict)
    class_names_by_lower: Dict[str, List[str]] = field(default_factory=dict)
    method_names_by_lower: Dict[str, List[str]] = field(default_factory=dict)
    class_tree: BKTree = field(default_factory=BKTree)
    method_tree: BKTree = field(default_factory=BKTree)
    class_trie: Trie = field(default_factory=Trie)
    method_trie: Trie = field(default_factory=Trie)
    loaded_at: Optional[datetime] = None
    skipped_records: int = 0

    @property
    def class_count(self) -> int:
        return len(self.classes)

    @property
    def method_count(self) -> int:
        return sum(len(v) for v in self.methods.values())

    @property
    def package_count(self) -> int:
        return len(self.packages)

    @property
    def entity_count(self) -> int:
        return self.class_count + self.method_count


def _as_tuple(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v for v in re.split(r"[\s,]+", value) if v)
    return tuple(str(v) for v in value if v)


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def build_snapshot(
    class_rows: Iterable[Dict[str, Any]],
    method_rows: Iterable[Dict[str, Any]],
    package_rows: Iterable[Dict[str, Any]],
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> RegistrySnapshot:
    """Build a complete snapshot from bulk-loaded rows.

    Rows without an id or name are skipped and counted.
    """
    snap = RegistrySnapshot()
    skipped = 0

    # Methods first so classes can carry their method ids and names
    methods_by_class: Dict[str, List[MethodEntity]] = defaultdict(list)
    for row in method_rows:
        method_id, name = _text(row.get("id")), _text(row.get("name"))
        if not method_id or not name:
            logger.warning(f"Skipping method record without id/name: {row!r:.200}")
            skipped += 1
            continue
        method = MethodEntity.create(
            method_id,
            name,
            vocabulary,
            signature=_text(row.get("signature")),
            class_name=_text(row.get("className")),
            package_name=_text(row.get("packageName")),
            return_type=_text(row.get("returnType")),
            is_constructor=bool(row.get("isConstructor")),
            description=_text(row.get("description")),
            modifiers=_as_tuple(row.get("modifiers")),
            parameter_types=_as_tuple(row.get("parameterTypes")),
        )
        snap.methods.setdefault(name, []).append(method)
        snap.by_id[method_id] = method
        methods_by_class[method.class_name].append(method)

    for row in class_rows:
        class_id, name = _text(row.get("id")), _text(row.get("name"))
        if not class_id or not name:
            logger.warning(f"Skipping class record without id/name: {row!r:.200}")
            skipped += 1
            continue
        owned = methods_by_class.get(name, [])
        entity = ClassEntity.create(
            class_id,
            name,
            vocabulary,
            full_name=_text(row.get("fullName")) or name,
            package_name=_text(row.get("packageName")),
            file_path=_text(row.get("filePath")),
            description=_text(row.get("description")),
            class_type=ClassType.from_labels(row.get("labels")),
            super_class=_text(row.get("superClass")) or None,
            interfaces=_as_tuple(row.get("interfaces")),
            modifiers=_as_tuple(row.get("modifiers")),
            annotations=_as_tuple(row.get("annotations")),
            method_ids=[m.id for m in owned],
            method_names=[m.name for m in owned],
        )
        previous = snap.classes.get(name)
        if previous is not None:
            snap.by_id.pop(previous.id, None)
        snap.classes[name] = entity
        snap.by_id[class_id] = entity

    for row in package_rows:
        package = _text(row.get("packageName"))
        if not package:
            skipped += 1
            continue
        entity = PackageEntity(package, _as_tuple(row.get("classes")))
        snap.packages[package] = entity
        snap.by_id[package_id(package)] = entity

    _index_classes(snap, vocabulary)
    _index_methods(snap, vocabulary)

    snap.skipped_records = skipped
    snap.loaded_at = datetime.now(timezone.utc)
    return snap


def _index_classes(snap: RegistrySnapshot, vocabulary: Vocabulary) -> None:
    for name, entity in snap.classes.items():
        if entity.suffix:
            snap.class_suffix_index.setdefault(entity.suffix, []).append(name)
            if entity.prefix:
                snap.class_prefix_index.setdefault(entity.prefix, []).append(name)
        snap.compound_index.setdefault("".join(entity.name_tokens), []).append(name)
        lower = name.lower()
        snap.class_names_by_lower.setdefault(lower, []).append(name)
        snap.class_tree.add(lower)
        snap.class_trie.insert(lower)


def _index_methods(snap: RegistrySnapshot, vocabulary: Vocabulary) -> None:
    for name, overloads in snap.methods.items():
        lower = name.lower()
        for prefix in vocabulary.method_prefixes:
            if lower.startswith(prefix) and len(name) > len(prefix):
                snap.method_prefix_index.setdefault(prefix, []).append(name)
                break
        for suffix in vocabulary.method_suffixes:
            if name.endswith(suffix):
                snap.method_suffix_index.setdefault(suffix, []).append(name)
                break

        tokens = tokenize_name(name)
        if overloads[0].prefix and len(tokens) > 1 and len(tokens[1]) > 1:
            snap.method_action_index.setdefault(tokens[1], []).append(name)

        snap.compound_index.setdefault("".join(tokens), []).append(name)
        snap.method_names_by_lower.setdefault(lower, []).append(name)
        snap.method_tree.add(lower)
        # One insert per overload so frequent names rank first in prefix suggestions
        for _ in overloads:
            snap.method_trie.insert(lower)


# ============================================================================
# Registry
# ============================================================================


class EntityRegistry:
    """
    Registry of classes, methods and packages with multi-strategy lookup.

    Attributes:
        source: Bulk loader providing ``load_classes/load_methods/load_packages``.
        vocabulary (Vocabulary): Naming vocabularies used to derive prefixes/suffixes.
    """

    def __init__(self, source=None, vocabulary: Vocabulary = DEFAULT_VOCABULARY):
        self.source = source
        self.vocabulary = vocabulary
        self._snapshot = RegistrySnapshot()
        self._refresh_lock = threading.Lock()
        self._usage: Counter = Counter()
        self._usage_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._refresh_thread: Optional[threading.Thread] = None
        self._listeners: List[Callable[["EntityRegistry"], None]] = []

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def last_refresh(self) -> Optional[datetime]:
        return self._snapshot.loaded_at

    # ========================================================================
    # Refresh
    # ========================================================================

    def refresh(self) -> bool:
        """
        Reload every entity from the source and swap in a new snapshot.

        Never raises. A failed load, or one that produced no entities, keeps
        the currently installed snapshot.

        Returns:
            True if a new snapshot was installed
        """
        if self.source is None:
            logger.warning("No entity source configured; registry refresh skipped")
            return False

        with self._refresh_lock:
            start = time.time()
            logger.info("🔄 Refreshing entity registry...")
            try:
                snapshot = build_snapshot(
                    self.source.load_classes(),
                    self.source.load_methods(),
                    self.source.load_packages(),
                    self.vocabulary,
                )
            except neo4j.exceptions.ServiceUnavailable as e:
                logger.error(f"❌ Entity source unavailable, keeping previous registry: {e}")
                return False
            except (neo4j.exceptions.Neo4jError, neo4j.exceptions.DriverError) as e:
                logger.error(f"❌ Entity load failed, keeping previous registry: {e}")
                return False
            except Exception as e:
                logger.exception(f"❌ Unexpected error during registry refresh: {e}")
                return False

            if snapshot.entity_count == 0:
                logger.warning("⚠️ Refresh loaded zero entities; keeping previous registry")
                return False

            self._snapshot = snapshot
            duration = time.time() - start
            logger.info(
                f"✅ Registry refreshed in {duration:.2f}s: {snapshot.class_count} classes, "
                f"{snapshot.method_count} methods, {snapshot.package_count} packages "
                f"({snapshot.skipped_records} records skipped)"
            )
            self._notify_listeners()
            return True

    def add_refresh_listener(self, callback: Callable[["EntityRegistry"], None]) -> None:
        """Call ``callback(registry)`` after every successful refresh."""
        self._listeners.append(callback)

    def _notify_listeners(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.warning(f"Refresh listener failed: {e}")

    def start_periodic_refresh(self, interval_seconds: float = DEFAULT_REFRESH_INTERVAL) -> None:
        """Refresh on a background daemon thread every ``interval_seconds``."""
        if self._refresh_thread and self._refresh_thread.is_alive():
            return
        self._stop_event.clear()

        def _loop():
            while not self._stop_event.wait(interval_seconds):
                self.refresh()

        self._refresh_thread = threading.Thread(target=_loop, name="registry-refresh", daemon=True)
        self._refresh_thread.start()
        logger.info(f"⏱️  Scheduled registry refresh every {interval_seconds:.0f}s")

    def stop_periodic_refresh(self) -> None:
        self._stop_event.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=5)
            self._refresh_thread = None

    # ========================================================================
    # Lookups
    # ========================================================================

    def find_exact_matches(self, term: str) -> List[EntityMatch]:
        """Class, method and package matches whose name equals ``term``."""
        term = (term or "").strip()
        if not term:
            return []
        snap = self._snapshot
        matches: List[EntityMatch] = []

        entity = snap.classes.get(term)
        if entity is not None:
            matches.append(self._class_match(entity, 1.0, MatchType.EXACT, "exact name match"))
        for method in snap.methods.get(term, []):
            matches.append(self._method_match(method, 1.0, MatchType.EXACT, "exact name match"))
        package = snap.packages.get(term)
        if package is not None:
            matches.append(self._package_match(package, 1.0, MatchType.EXACT, "exact package match"))

        if matches:
            self._record_usage(term)
        return matches

    def find_exact_matches_ignore_case(self, term: str) -> List[EntityMatch]:
        """Exact matches for every loaded name equal to ``term`` ignoring case."""
        term = (term or "").strip()
        if not term:
            return []
        snap = self._snapshot
        lower = term.lower()
        names = snap.class_names_by_lower.get(lower, []) + snap.method_names_by_lower.get(lower, [])
        matches: Dict[str, EntityMatch] = {}
        for name in names:
            for match in self.find_exact_matches(name):
                matches.setdefault(match.entity_id, match)
        return list(matches.values())

    def find_by_prefix(self, prefix: str) -> List[EntityMatch]:
        """Entities whose name starts with ``prefix`` (case-insensitive)."""
        prefix = (prefix or "").strip()
        if not prefix:
            return []
        snap = self._snapshot
        lower = prefix.lower()
        found: Dict[str, EntityMatch] = {}
        reason = f"prefix match: {prefix}"

        for word in snap.class_trie.find_words_with_prefix(lower):
            for name in snap.class_names_by_lower.get(word, []):
                entity = snap.classes[name]
                if name.lower().startswith(lower) and entity.id not in found:
                    found[entity.id] = self._class_match(
                        entity, prefix_confidence(prefix, name), MatchType.PREFIX, reason
                    )
        for word in snap.method_trie.find_words_with_prefix(lower):
            for name in snap.method_names_by_lower.get(word, []):
                for method in snap.methods[name]:
                    if method.id not in found:
                        found[method.id] = self._method_match(
                            method, prefix_confidence(prefix, name), MatchType.PREFIX, reason
                        )

        # Pattern indexes, in case they know names the tries do not
        for name in snap.class_prefix_index.get(prefix, []):
            entity = snap.classes.get(name)
            if entity is not None and entity.id not in found:
                found[entity.id] = self._class_match(
                    entity, prefix_confidence(prefix, name), MatchType.PREFIX, reason
                )
        for name in snap.method_prefix_index.get(lower, []):
            for method in snap.methods.get(name, []):
                if method.id not in found:
                    found[method.id] = self._method_match(
                        method, prefix_confidence(prefix, name), MatchType.PREFIX, reason
                    )

        return list(found.values())

    def find_by_suffix(self, suffix: str) -> List[EntityMatch]:
        """Entities whose name ends with ``suffix``."""
        suffix = (suffix or "").strip()
        if not suffix:
            return []
        snap = self._snapshot
        found: Dict[str, EntityMatch] = {}
        reason = f"suffix match: {suffix}"

        for name in snap.class_suffix_index.get(suffix, []):
            entity = snap.classes.get(name)
            if entity is not None:
                found[entity.id] = self._class_match(
                    entity, prefix_confidence(suffix, name), MatchType.SUFFIX, reason
                )
        for name in snap.method_suffix_index.get(suffix, []):
            for method in snap.methods.get(name, []):
                found[method.id] = self._method_match(
                    method, prefix_confidence(suffix, name), MatchType.SUFFIX, reason
                )

        # Linear scan for suffixes outside the vocabulary
        lower = suffix.lower()
        for name, entity in snap.classes.items():
            if entity.id not in found and name.lower().endswith(lower):
                found[entity.id] = self._class_match(
                    entity, prefix_confidence(suffix, name), MatchType.SUFFIX, reason
                )

        return list(found.values())

    def find_by_pattern(self, pattern: str) -> List[EntityMatch]:
        """Resolve ``Prefix*`` / ``*Suffix`` wildcards, or an exact name."""
        pattern = (pattern or "").strip()
        if pattern.endswith("*") and len(pattern) > 1:
            return self.find_by_prefix(pattern[:-1])
        if pattern.startswith("*") and len(pattern) > 1:
            return self.find_by_suffix(pattern[1:])
        return self.find_exact_matches(pattern)

    def find_similar(self, term: str, max_edit_distance: int = 2) -> List[EntityMatch]:
        """Classes and methods within ``max_edit_distance`` edits of ``term``."""
        term = (term or "").strip()
        if not term or max_edit_distance < 0:
            return []
        snap = self._snapshot
        lower = term.lower()
        matches: List[EntityMatch] = []

        for word, distance in snap.class_tree.search_with_distance(lower, max_edit_distance):
            for name in snap.class_names_by_lower.get(word, []):
                matches.append(
                    self._class_match(
                        snap.classes[name],
                        similarity_confidence(lower, word, distance),
                        MatchType.FUZZY,
                        f"edit distance {distance} from '{term}'",
                    )
                )
        for word, distance in snap.method_tree.search_with_distance(lower, max_edit_distance):
            for name in snap.method_names_by_lower.get(word, []):
                for method in snap.methods[name]:
                    matches.append(
                        self._method_match(
                            method,
                            similarity_confidence(lower, word, distance),
                            MatchType.FUZZY,
                            f"edit distance {distance} from '{term}'",
                        )
                    )
        return matches

    def find_by_compound(self, *terms: str) -> List[EntityMatch]:
        """Exact-match PascalCase, camelCase and snake_case joins of ``terms``."""
        parts = [t.strip() for t in terms if t and t.strip()]
        if not parts:
            return []
        pascal = "".join(p[:1].upper() + p[1:].lower() for p in parts)
        camel = pascal[:1].lower() + pascal[1:]
        snake = "_".join(p.lower() for p in parts)

        snap = self._snapshot
        candidates = [pascal, camel, snake]
        candidates.extend(snap.compound_index.get("".join(p.lower() for p in parts), []))

        reason = f"compound match: {' + '.join(parts)}"
        found: Dict[str, EntityMatch] = {}
        for candidate in candidates:
            for match in self.find_exact_matches(candidate):
                if match.entity_id not in found:
                    found[match.entity_id] = match.with_updates(match_reason=reason)
        return list(found.values())

    def find_methods_by_action(self, action: str) -> List[EntityMatch]:
        """Methods whose first word after the verb is ``action`` (``getUser`` -> ``user``)."""
        snap = self._snapshot
        key = (action or "").strip().lower()
        matches = []
        for name in snap.method_action_index.get(key, []):
            for method in snap.methods.get(name, []):
                matches.append(
                    self._method_match(method, 0.7, MatchType.PATTERN, f"method action: {key}")
                )
        return matches

    def find_entities_with_term(self, term: str) -> List[EntityMatch]:
        """Union of exact, prefix and suffix hits for ``term``, deduplicated by id."""
        term = (term or "").strip()
        if not term:
            return []
        capitalized = term[:1].upper() + term[1:]
        found: Dict[str, EntityMatch] = {}
        for match in (
            self.find_exact_matches(capitalized)
            + self.find_by_prefix(term)
            + self.find_by_suffix(capitalized)
        ):
            current = found.get(match.entity_id)
            if current is None or match.confidence > current.confidence:
                found[match.entity_id] = match
        return list(found.values())

    # ========================================================================
    # Accessors
    # ========================================================================

    def find_class(self, name: str) -> Optional[ClassEntity]:
        return self._snapshot.classes.get(name)

    def find_methods(self, name: str) -> List[MethodEntity]:
        return list(self._snapshot.methods.get(name, []))

    def find_package(self, name: str) -> Optional[PackageEntity]:
        return self._snapshot.packages.get(name)

    def get_by_id(self, entity_id: str):
        return self._snapshot.by_id.get(entity_id)

    def has_class(self, name: str) -> bool:
        return name in self._snapshot.classes

    def has_methods(self, name: str) -> bool:
        return name in self._snapshot.methods

    def exists(self, entity_id: str) -> bool:
        return entity_id in self._snapshot.by_id

    def class_count(self) -> int:
        return self._snapshot.class_count

    def method_count(self) -> int:
        return self._snapshot.method_count

    def package_count(self) -> int:
        return self._snapshot.package_count

    def all_classes(self) -> List[ClassEntity]:
        return list(self._snapshot.classes.values())

    def all_methods(self) -> List[MethodEntity]:
        return [m for overloads in self._snapshot.methods.values() for m in overloads]

    def common_prefixes(self, limit: int = 10) -> List[str]:
        """Most used method verb prefixes."""
        index = self._snapshot.method_prefix_index
        return sorted(index, key=lambda k: (-len(index[k]), k))[:limit]

    def common_suffixes(self, limit: int = 10) -> List[str]:
        """Most used class suffixes."""
        index = self._snapshot.class_suffix_index
        return sorted(index, key=lambda k: (-len(index[k]), k))[:limit]

    def suggest_names(self, prefix: str, limit: int = 10) -> List[str]:
        """Lowercased class and method names for ``prefix``, most common first."""
        snap = self._snapshot
        lower = (prefix or "").lower()
        words = snap.class_trie.find_words_with_prefix_sorted(lower, limit)
        for word in snap.method_trie.find_words_with_prefix_sorted(lower, limit):
            if word not in words:
                words.append(word)
        return words[:limit]

    def usage_count(self, name: str) -> int:
        with self._usage_lock:
            return self._usage[name]

    def stats(self) -> Dict[str, Any]:
        snap = self._snapshot
        return {
            "classes": snap.class_count,
            "methods": snap.method_count,
            "packages": snap.package_count,
            "class_suffixes": len(snap.class_suffix_index),
            "method_prefixes": len(snap.method_prefix_index),
            "method_actions": len(snap.method_action_index),
            "skipped_records": snap.skipped_records,
            "last_refresh": snap.loaded_at.isoformat() if snap.loaded_at else None,
        }

    # ========================================================================
    # Helpers
    # ========================================================================

    def tokenize_name(self, name: str) -> List[str]:
        return tokenize_name(name)

    def _record_usage(self, name: str) -> None:
        with self._usage_lock:
            self._usage[name] += 1

    def _class_match(self, entity: ClassEntity, confidence: float, match_type: MatchType, reason: str) -> EntityMatch:
        return EntityMatch(
            entity_id=entity.id,
            entity_name=entity.name,
            entity_type=EntityType.CLASS,
            confidence=confidence,
            match_type=match_type,
            match_reason=reason,
            source=REGISTRY_SOURCE,
            package_name=entity.package_name or None,
            signature=entity.full_name or None,
        )

    def _method_match(self, method: MethodEntity, confidence: float, match_type: MatchType, reason: str) -> EntityMatch:
        return EntityMatch(
            entity_id=method.id,
            entity_name=method.name,
            entity_type=EntityType.METHOD,
            confidence=confidence,
            match_type=match_type,
            match_reason=reason,
            source=REGISTRY_SOURCE,
            class_name=method.class_name or None,
            package_name=method.package_name or None,
            signature=method.signature or None,
        )

    def _package_match(self, package: PackageEntity, confidence: float, match_type: MatchType, reason: str) -> EntityMatch:
        return EntityMatch(
            entity_id=package_id(package.name),
            entity_name=package.name,
            entity_type=EntityType.PACKAGE,
            confidence=confidence,
            match_type=match_type,
            match_reason=reason,
            source=REGISTRY_SOURCE,
            package_name=package.name,
        )
