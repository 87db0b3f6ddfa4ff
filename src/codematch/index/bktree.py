"""BK-tree for edit-distance bounded string lookup."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein


class _Node:
    __slots__ = ("word", "children")

    def __init__(self, word: str):
        self.word = word
        self.children: Dict[int, "_Node"] = {}


class BKTree:
    """Stores strings and answers "everything within distance d of q".

    Children of a node are keyed by their edit distance to the node's word.
    A search only descends into children whose key lies within
    ``[d - max_distance, d + max_distance]``, which the triangle inequality
    guarantees is the only place further matches can live.
    """

    def __init__(self, distance: Optional[Callable[[str, str], int]] = None):
        self._distance = distance or Levenshtein.distance
        self._root: Optional[_Node] = None
        self._size = 0

    def add(self, word: str) -> None:
        """Insert ``word``. Exact duplicates are ignored."""
        if self._root is None:
            self._root = _Node(word)
            self._size = 1
            return

        node = self._root
        while True:
            d = self._distance(node.word, word)
            if d == 0:
                return
            child = node.children.get(d)
            if child is None:
                node.children[d] = _Node(word)
                self._size += 1
                return
            node = child

    def search(self, query: str, max_distance: int) -> List[str]:
        """Return every stored word within ``max_distance`` edits of ``query``."""
        return [word for word, _ in self.search_with_distance(query, max_distance)]

    def search_with_distance(self, query: str, max_distance: int) -> List[Tuple[str, int]]:
        """Like :meth:`search` but also returns each word's distance, closest first."""
        if self._root is None or max_distance < 0:
            return []

        results: List[Tuple[str, int]] = []
        stack = [self._root]
        while stack:
            node = stack.pop()
            d = self._distance(query, node.word)
            if d <= max_distance:
                results.append((node.word, d))
            low, high = d - max_distance, d + max_distance
            for key, child in node.children.items():
                if low <= key <= high:
                    stack.append(child)

        results.sort(key=lambda item: (item[1], item[0]))
        return results

    def size(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._root is None

    def clear(self) -> None:
        self._root = None
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __contains__(self, word: str) -> bool:
        return bool(self.search_with_distance(word, 0))
