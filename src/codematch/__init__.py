"""codematch: multi-strategy entity matching over a Java code knowledge graph."""

__version__ = "0.1.0"
