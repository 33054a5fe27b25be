"""
Documents, queries, signs and concept weight tables.

A document (or query, by convention a negative id) is a sparse vector over
atomic concepts, stored as a ``SortedList`` of ``ConceptWeight`` elements.
Documents are usually described by *signs* (stemmed terms); the concept/sign
association expands every sign weight onto the atomic concepts of that sign.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from operator import attrgetter

from concept_weights.errors import DanglingReferenceError
from concept_weights.sorted_list import SortedList

# Shared key functions: the set algebra in sorted_list only combines lists
# that were built with the very same key object.
concept_key = attrgetter("concept")
doc_key = attrgetter("doc_id")
sign_key = attrgetter("sign")


@dataclass
class ConceptWeight:
    """Weight of one atomic concept inside a document, query or weight table."""

    concept: int
    weight: float = 0.0


def new_vector(
    items: Iterable[ConceptWeight] | None = None,
) -> SortedList[ConceptWeight]:
    return SortedList(concept_key, items)


@dataclass
class Document:
    doc_id: int
    concepts: SortedList[ConceptWeight] = field(default_factory=new_vector)

    @property
    def is_query(self) -> bool:
        return self.doc_id < 0

    def add(self, concept: int, weight: float) -> None:
        """Accumulate ``weight`` onto ``concept``."""
        entry = self.concepts.insert_or_fetch(concept, lambda: ConceptWeight(concept))
        entry.weight += weight

    def as_dict(self) -> dict[int, float]:
        return {cw.concept: cw.weight for cw in self.concepts}


@dataclass
class Sign:
    sign: int
    concepts: SortedList[ConceptWeight] = field(default_factory=new_vector)


class SignTable:
    """Sign id -> atomic concepts of that sign (the concept-space association)."""

    def __init__(self) -> None:
        self._signs: SortedList[Sign] = SortedList(sign_key)

    def __len__(self) -> int:
        return len(self._signs)

    def __iter__(self) -> Iterator[Sign]:
        return iter(self._signs)

    def add_sign(self, sign: int) -> Sign:
        return self._signs.insert_or_fetch(sign, lambda: Sign(sign))

    def add_concept(self, sign: int, concept: int) -> None:
        concepts = self.add_sign(sign).concepts
        concepts.insert_or_fetch(concept, lambda: ConceptWeight(concept, 1.0))

    def concepts_of(self, sign: int) -> Iterator[int]:
        entry = self._signs.lookup(sign)
        if entry is None:
            raise DanglingReferenceError("sign", sign, "document description")
        return (cw.concept for cw in entry.concepts)


class DocumentTable:
    """All loaded documents and queries, sorted by id."""

    def __init__(self, documents: Iterable[Document] | None = None):
        self._docs: SortedList[Document] = SortedList(doc_key, documents)

    def __len__(self) -> int:
        return len(self._docs)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._docs)

    def __contains__(self, doc_id: int) -> bool:
        return doc_id in self._docs

    def add(self, doc_id: int) -> Document:
        return self._docs.insert_or_fetch(doc_id, lambda: Document(doc_id))

    def get(self, doc_id: int) -> Document | None:
        return self._docs.lookup(doc_id)

    def require(self, doc_id: int, context: str = "") -> Document:
        doc = self._docs.lookup(doc_id)
        if doc is None:
            kind = "query" if doc_id < 0 else "document"
            raise DanglingReferenceError(kind, doc_id, context)
        return doc

    def queries(self) -> Iterator[Document]:
        return (doc for doc in self._docs if doc.is_query)

    def documents(self) -> Iterator[Document]:
        return (doc for doc in self._docs if not doc.is_query)

    def concept_ids(self) -> set[int]:
        return {cw.concept for doc in self._docs for cw in doc.concepts}


class WeightTable:
    """
    Concept id -> weight (IDF values before optimization, optimized weights after).

    Iteration is in ascending concept order.
    """

    def __init__(self, items: Iterable[tuple[int, float]] | None = None):
        self.entries: SortedList[ConceptWeight] = new_vector()
        if items is not None:
            for concept, weight in items:
                self.set(concept, weight)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ConceptWeight]:
        return iter(self.entries)

    def __contains__(self, concept: int) -> bool:
        return concept in self.entries

    def set(self, concept: int, weight: float) -> None:
        entry = self.entries.insert_or_fetch(concept, lambda: ConceptWeight(concept))
        entry.weight = weight

    def get(self, concept: int) -> float | None:
        entry = self.entries.lookup(concept)
        return entry.weight if entry is not None else None

    def require(self, concept: int, context: str = "") -> float:
        entry = self.entries.lookup(concept)
        if entry is None:
            raise DanglingReferenceError("concept", concept, context)
        return entry.weight

    def as_dict(self) -> dict[int, float]:
        return {cw.concept: cw.weight for cw in self.entries}
