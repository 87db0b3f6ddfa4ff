"""Bulk loaders that feed the entity registry.

A source is any object exposing ``load_classes()``, ``load_methods()`` and
``load_packages()``, each returning a list of plain row dicts.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import neo4j

logger = logging.getLogger(__name__)

CLASSES_QUERY = """
    MATCH (c:Class)
    OPTIONAL MATCH (c)-[:EXTENDS]->(super:Class)
    OPTIONAL MATCH (c)-[:IMPLEMENTS]->(iface)
    OPTIONAL MATCH (c)-[]->(d:Description)
    WITH c, super, d, collect(DISTINCT iface.name) AS interfaces
    RETURN c.id AS id,
           c.name AS name,
           c.fullName AS fullName,
           c.packageName AS packageName,
           c.filePath AS filePath,
           c.modifiers AS modifiers,
           labels(c) AS labels,
           super.name AS superClass,
           interfaces,
           d.content AS description
    LIMIT $limit
"""

METHODS_QUERY = """
    MATCH (c:Class)-[:CONTAINS]->(m:Method)
    OPTIONAL MATCH (m)-[]->(d:Description)
    RETURN m.id AS id,
           m.name AS name,
           m.signature AS signature,
           c.name AS className,
           c.packageName AS packageName,
           m.returnType AS returnType,
           m.modifiers AS modifiers,
           m.isConstructor AS isConstructor,
           d.content AS description
    LIMIT $limit
"""

PACKAGES_QUERY = """
    MATCH (c:Class)
    WHERE c.packageName IS NOT NULL AND c.packageName <> ''
    RETURN DISTINCT c.packageName AS packageName,
           collect(c.name) AS classes
"""


class Neo4jEntitySource:
    """
    Reads classes, methods and packages from a Java code graph in Neo4j.

    Attributes:
        driver (neo4j.Driver): Database connection.
        class_limit (int): Maximum class rows read per refresh.
        method_limit (int): Maximum method rows read per refresh.
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        class_limit: int = 10000,
        method_limit: int = 50000,
        driver: Optional[neo4j.Driver] = None,
    ):
        """
        Initialize the source.

        Args:
            uri: Neo4j connection URI (e.g., "bolt://localhost:7687")
            user: Neo4j username
            password: Neo4j password
            class_limit: LIMIT applied to the class query
            method_limit: LIMIT applied to the method query
            driver: Pre-built driver (mainly for tests)
        """
        self.driver = driver or neo4j.GraphDatabase.driver(
            uri,
            auth=(user, password),
            max_connection_pool_size=10,
            connection_acquisition_timeout=60,
            connection_timeout=30,
        )
        self.uri = uri
        self.class_limit = class_limit
        self.method_limit = method_limit

    def close(self):
        """Closes database connection."""
        self.driver.close()

    def load_classes(self) -> List[Dict[str, Any]]:
        return self._fetch(CLASSES_QUERY, limit=self.class_limit)

    def load_methods(self) -> List[Dict[str, Any]]:
        return self._fetch(METHODS_QUERY, limit=self.method_limit)

    def load_packages(self) -> List[Dict[str, Any]]:
        return self._fetch(PACKAGES_QUERY)

    def _fetch(self, query: str, **params) -> List[Dict[str, Any]]:
        with self.driver.session() as session:
            result = session.run(query, **params)
            return [dict(record) for record in result]


class StaticEntitySource:
    """In-memory source serving fixed rows, shaped like the Neo4j records."""

    def __init__(
        self,
        classes: Optional[Iterable[Dict[str, Any]]] = None,
        methods: Optional[Iterable[Dict[str, Any]]] = None,
        packages: Optional[Iterable[Dict[str, Any]]] = None,
    ):
        self.classes = list(classes or [])
        self.methods = list(methods or [])
        self.packages = list(packages or [])

    def load_classes(self) -> List[Dict[str, Any]]:
        return list(self.classes)

    def load_methods(self) -> List[Dict[str, Any]]:
        return list(self.methods)

    def load_packages(self) -> List[Dict[str, Any]]:
        if self.packages:
            return list(self.packages)
        # Derive packages from class rows when none were given explicitly
        by_package: Dict[str, List[str]] = {}
        for row in self.classes:
            package = row.get("packageName")
            if package and row.get("name"):
                by_package.setdefault(package, []).append(row["name"])
        return [{"packageName": p, "classes": names} for p, names in sorted(by_package.items())]
