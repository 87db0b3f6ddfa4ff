"""Index structures: BK-tree, trie, vocabularies and the entity registry."""

from codematch.index.bktree import BKTree
from codematch.index.trie import Trie
from codematch.index.vocabulary import DEFAULT_VOCABULARY, Vocabulary

__all__ = [
    "BKTree",
    "Trie",
    "Vocabulary",
    "DEFAULT_VOCABULARY",
]
