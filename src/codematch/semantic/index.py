"""
Semantic side-index over entity names.

Holds entity-name embeddings for cosine similarity search, plus static
knowledge the agents use to widen a query: domain-term synonyms, business
contexts, abbreviations, Soundex phonetic codes and embedding clusters.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

import numpy as np

logger = logging.getLogger(__name__)

DOMAIN_TERMS: Dict[str, Set[str]] = {
    "payment": {"transaction", "charge", "billing", "invoice", "payment", "pay",
                "money", "financial", "cost", "price", "amount"},
    "user": {"customer", "client", "account", "person", "member", "profile",
             "identity", "authentication", "auth", "login"},
    "order": {"purchase", "order", "cart", "checkout", "item", "product",
              "inventory", "stock", "catalog"},
    "service": {"api", "endpoint", "handler", "controller", "processor",
                "manager", "engine", "worker"},
    "data": {"entity", "model", "repository", "dao", "database", "storage",
             "persistence", "record", "document"},
    "validation": {"validate", "verify", "check", "confirm", "ensure", "assert",
                   "test", "audit", "compliance"},
    "security": {"auth", "authentication", "authorization", "permission", "role",
                 "access", "token", "credential", "encrypt"},
    "communication": {"message", "notification", "email", "sms", "alert",
                      "broadcast", "publish", "subscribe", "event"},
}

ABBREVIATIONS: Dict[str, Set[str]] = {
    "svc": {"service"},
    "mgr": {"manager"},
    "ctrl": {"controller"},
    "repo": {"repository"},
    "impl": {"implementation", "implement"},
    "util": {"utility", "utilities"},
    "config": {"configuration"},
    "proc": {"processor", "process"},
    "auth": {"authentication", "authorization"},
    "admin": {"administrator", "administration"},
    "info": {"information"},
    "ref": {"reference"},
    "temp": {"temporary", "template"},
    "calc": {"calculator", "calculate"},
    "gen": {"generator", "generate"},
    "val": {"validator", "validate", "value"},
    "trans": {"transaction", "transformation", "translate"},
    "log": {"logger", "logging"},
}

BUSINESS_CONTEXTS: Dict[str, Set[str]] = {
    "ecommerce": {"order", "payment", "product", "cart", "checkout", "shipping",
                  "inventory", "catalog", "customer"},
    "financial": {"payment", "transaction", "billing", "invoice", "accounting",
                  "ledger", "balance", "credit", "debit"},
    "user_management": {"user", "profile", "account", "authentication",
                        "authorization", "permission", "role"},
    "content": {"document", "file", "media", "asset", "content", "template",
                "layout", "theme"},
    "analytics": {"metric", "report", "dashboard", "statistic", "analysis",
                  "insight", "tracking", "measurement"},
}

CLUSTER_THRESHOLD = 0.8
CO_OCCURRENCE_THRESHOLD = 5

_SOUNDEX_CODES = {
    **dict.fromkeys("BFPV", "1"),
    **dict.fromkeys("CGJKQSXZ", "2"),
    **dict.fromkeys("DT", "3"),
    "L": "4",
    **dict.fromkeys("MN", "5"),
    "R": "6",
}


def soundex(word: str) -> str:
    """Four-character Soundex code (``Robert`` -> ``R163``)."""
    if not word:
        return "0000"
    word = word.upper()
    code = [word[0]]
    previous = _SOUNDEX_CODES.get(word[0], "0")
    for ch in word[1:]:
        if len(code) >= 4:
            break
        current = _SOUNDEX_CODES.get(ch, "0")
        if current != "0" and current != previous:
            code.append(current)
        previous = current
    return "".join(code).ljust(4, "0")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va, vb = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        return 0.0
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


@dataclass(frozen=True)
class SimilarEntity:
    entity_name: str
    similarity: float


class SemanticEntityIndex:
    """Thread-safe semantic lookups; writers take a lock, readers work on copies."""

    def __init__(
        self,
        domain_terms: Optional[Mapping[str, Iterable[str]]] = None,
        abbreviations: Optional[Mapping[str, Iterable[str]]] = None,
        business_contexts: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self._lock = threading.Lock()
        self._embeddings: Dict[str, np.ndarray] = {}
        self._clusters: Dict[str, Set[str]] = {}
        self._phonetic: Dict[str, Set[str]] = {}
        self._domain_terms = {k: set(v) for k, v in (domain_terms or DOMAIN_TERMS).items()}
        self._abbreviations = {k: set(v) for k, v in (abbreviations or ABBREVIATIONS).items()}
        self._business_contexts = {k: set(v) for k, v in (business_contexts or BUSINESS_CONTEXTS).items()}

    # ========================================================================
    # Queries
    # ========================================================================

    def find_similar(self, query_embedding: Sequence[float], threshold: float) -> List[SimilarEntity]:
        """Entity names whose embedding has cosine similarity >= ``threshold``, best first."""
        embeddings = dict(self._embeddings)
        if not embeddings or query_embedding is None:
            return []
        query = np.asarray(query_embedding, dtype=float)
        results = []
        for name, vector in embeddings.items():
            similarity = cosine_similarity(query, vector)
            if similarity >= threshold:
                results.append(SimilarEntity(name, similarity))
        results.sort(key=lambda s: (-s.similarity, s.entity_name))
        return results

    def get_domain_terms(self, term: str) -> Set[str]:
        """Synonyms of ``term``: its own mapping plus every domain it belongs to."""
        lower = term.lower()
        related = set(self._domain_terms.get(lower, ()))
        for domain, members in self._domain_terms.items():
            if lower in members:
                related.update(members)
                related.add(domain)
        related.discard(lower)
        return related

    def expand_abbreviation(self, abbreviation: str) -> Set[str]:
        return set(self._abbreviations.get(abbreviation.lower(), ()))

    def find_phonetic_matches(self, term: str) -> Set[str]:
        return set(self._phonetic.get(soundex(term), ()))

    def get_business_context_terms(self, term: str) -> Set[str]:
        lower = term.lower()
        related: Set[str] = set()
        for members in self._business_contexts.values():
            if lower in members:
                related.update(members)
        related.discard(lower)
        return related

    def find_semantic_cluster(self, entity_name: str) -> Set[str]:
        return set(self._clusters.get(entity_name.lower(), ()))

    def has_embedding(self, entity_name: str) -> bool:
        return entity_name.lower() in self._embeddings

    def all_domains(self) -> Set[str]:
        return set(self._domain_terms)

    def all_business_contexts(self) -> Set[str]:
        return set(self._business_contexts)

    @property
    def entity_count(self) -> int:
        return len(self._embeddings)

    @property
    def domain_term_count(self) -> int:
        return len(self._domain_terms)

    @property
    def cluster_count(self) -> int:
        return len(self._clusters)

    # ========================================================================
    # Updates
    # ========================================================================

    def add_entity_embedding(self, entity_name: str, embedding: Sequence[float]) -> None:
        """Store an embedding (keyed by lowercased name) and index the name phonetically."""
        with self._lock:
            embeddings = dict(self._embeddings)
            embeddings[entity_name.lower()] = np.asarray(embedding, dtype=float)
            self._embeddings = embeddings
        self.add_names([entity_name])

    def add_names(self, names: Iterable[str]) -> None:
        """Index entity names by Soundex code so phonetic lookups can find them."""
        with self._lock:
            phonetic = {k: set(v) for k, v in self._phonetic.items()}
            for name in names:
                if name:
                    phonetic.setdefault(soundex(name), set()).add(name)
            self._phonetic = phonetic

    def build_semantic_clusters(self, threshold: float = CLUSTER_THRESHOLD) -> int:
        """Group each embedded name with the later names at least ``threshold`` similar to it."""
        logger.info("Building semantic clusters...")
        clusters = _cluster_embeddings(dict(self._embeddings), threshold)
        with self._lock:
            self._clusters = clusters
        logger.info(f"Built {len(clusters)} semantic clusters")
        return len(clusters)

    def update_domain_terms(self, co_occurrences: Mapping[str, Mapping[str, int]]) -> None:
        """Merge terms that co-occur at least five times into the domain mapping."""
        with self._lock:
            domain_terms = {k: set(v) for k, v in self._domain_terms.items()}
            for term, counts in co_occurrences.items():
                related = {other for other, n in counts.items() if n >= CO_OCCURRENCE_THRESHOLD}
                if related:
                    domain_terms.setdefault(term, set()).update(related)
            self._domain_terms = domain_terms

    def index_registry(
        self,
        registry,
        embedding_service=None,
        batch_size: int = 100,
        cluster_threshold: float = CLUSTER_THRESHOLD,
    ) -> int:
        """
        Rebuild the phonetic index, embeddings and clusters from the
        registry's current entities and swap them in together.

        Names that left the registry are dropped. Class names that were
        already embedded keep their vector, so only new names are sent to
        ``embedding_service``.

        Returns:
            Number of names embedded by this call
        """
        class_names = [c.name for c in registry.all_classes()]
        method_names = sorted({m.name for m in registry.all_methods()})

        phonetic: Dict[str, Set[str]] = {}
        for name in class_names + method_names:
            if name:
                phonetic.setdefault(soundex(name), set()).add(name)

        previous = dict(self._embeddings)
        embeddings: Dict[str, np.ndarray] = {}
        pending: List[str] = []
        queued: Set[str] = set()
        for name in class_names:
            key = name.lower()
            if key in embeddings or key in queued:
                continue
            if key in previous:
                embeddings[key] = previous[key]
            else:
                pending.append(name)
                queued.add(key)

        embedded = 0
        if embedding_service is not None:
            for start in range(0, len(pending), batch_size):
                batch = pending[start:start + batch_size]
                vectors = embedding_service.embed_batch(batch)
                if len(vectors) != len(batch):
                    logger.warning("⚠️ Embedding batch failed; semantic index left partial")
                    break
                for name, vector in zip(batch, vectors):
                    embeddings[name.lower()] = np.asarray(vector, dtype=float)
                    embedded += 1

        clusters = _cluster_embeddings(embeddings, cluster_threshold)
        with self._lock:
            self._phonetic = phonetic
            self._embeddings = embeddings
            self._clusters = clusters

        dropped = len(set(previous) - set(embeddings))
        logger.info(
            f"✅ Semantic index rebuilt: {len(embeddings)} embedded names ({embedded} new, "
            f"{dropped} dropped), {len(clusters)} clusters"
        )
        return embedded


def _cluster_embeddings(embeddings: Mapping[str, np.ndarray], threshold: float) -> Dict[str, Set[str]]:
    """Map each name to itself plus the later names with cosine similarity >= ``threshold``."""
    by_shape: Dict[tuple, List[str]] = {}
    for name, vector in embeddings.items():
        by_shape.setdefault(np.shape(vector), []).append(name)

    clusters: Dict[str, Set[str]] = {}
    for names in by_shape.values():
        if len(names) < 2:
            continue
        matrix = np.stack([np.asarray(embeddings[name], dtype=float) for name in names])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0.0] = 1.0
        unit = matrix / norms[:, None]
        for i, first in enumerate(names[:-1]):
            similarities = unit[i + 1:] @ unit[i]
            members = {names[i + 1 + j] for j in np.flatnonzero(similarities >= threshold)}
            if members:
                members.add(first)
                clusters[first] = members
    return clusters
