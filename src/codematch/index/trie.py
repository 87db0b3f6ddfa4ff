"""Prefix tree over lowercased entity names."""

from __future__ import annotations

from typing import Dict, List, Optional


class TrieNode:
    __slots__ = ("children", "is_end", "word", "frequency")

    def __init__(self):
        self.children: Dict[str, "TrieNode"] = {}
        self.is_end = False
        self.word: Optional[str] = None
        self.frequency = 0


class Trie:
    """Answers "all words starting with this prefix" in O(len(prefix) + results).

    Inserting the same word again bumps its frequency, which is used by
    :meth:`find_words_with_prefix_sorted` to rank common names first.
    """

    def __init__(self):
        self.root = TrieNode()
        self._count = 0

    def insert(self, word: str) -> None:
        if not word:
            return
        node = self.root
        for ch in word:
            node = node.children.setdefault(ch, TrieNode())
        if not node.is_end:
            node.is_end = True
            node.word = word
            self._count += 1
        node.frequency += 1

    def search(self, word: str) -> bool:
        node = self._walk(word)
        return node is not None and node.is_end

    def starts_with(self, prefix: str) -> bool:
        return self._walk(prefix) is not None

    def find_words_with_prefix(self, prefix: str) -> List[str]:
        """Return all inserted words sharing ``prefix`` (depth-first order)."""
        node = self._walk(prefix)
        if node is None:
            return []
        return [n.word for n in self._collect(node)]

    def find_words_with_prefix_sorted(self, prefix: str, limit: int = 10) -> List[str]:
        """Words sharing ``prefix``, most frequent first, then alphabetical."""
        node = self._walk(prefix)
        if node is None:
            return []
        nodes = sorted(self._collect(node), key=lambda n: (-n.frequency, n.word))
        return [n.word for n in nodes[:limit]]

    def delete(self, word: str) -> bool:
        """Remove ``word``; returns False if it was not present."""
        path = [self.root]
        node = self.root
        for ch in word:
            node = node.children.get(ch)
            if node is None:
                return False
            path.append(node)
        if not node.is_end:
            return False

        node.is_end = False
        node.word = None
        node.frequency = 0
        self._count -= 1

        # Prune now-empty branches bottom-up
        for i in range(len(word) - 1, -1, -1):
            child = path[i + 1]
            if child.is_end or child.children:
                break
            del path[i].children[word[i]]
        return True

    def word_count(self) -> int:
        return self._count

    def all_words(self) -> List[str]:
        return [n.word for n in self._collect(self.root)]

    def clear(self) -> None:
        self.root = TrieNode()
        self._count = 0

    def is_empty(self) -> bool:
        return self._count == 0

    def _walk(self, prefix: str) -> Optional[TrieNode]:
        node = self.root
        for ch in prefix:
            node = node.children.get(ch)
            if node is None:
                return None
        return node

    def _collect(self, start: TrieNode) -> List[TrieNode]:
        found: List[TrieNode] = []
        stack = [start]
        while stack:
            node = stack.pop()
            if node.is_end:
                found.append(node)
            for ch in sorted(node.children, reverse=True):
                stack.append(node.children[ch])
        return found
