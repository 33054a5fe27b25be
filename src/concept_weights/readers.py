"""
Readers and writers for the line-oriented text files of the tool chain.

Every record is one line of whitespace-separated fields:

    preferences   <type> <query> <doc1> <doc2> [<delta>]      type in + - C
    documents     <doc-id>                    opens a document (negative = query)
                  <id> <weight>               sign (or concept) weight of that document
    concepts      <sign-id>:                  opens the concept list of a sign
                  <concept-id>                one atomic concept of that sign
    weights/idf   <concept-id> <value>
    relevance     <query-id>:                 opens a query (ids are made negative)
                  <doc-id> [<level>]          relevant document, level defaults to 1
    rsv           <query-id> <doc-id> <rsv>

Blank lines and ``#`` comments are ignored; anything else that does not fit
raises ``MalformedInputError`` with the file name and line number.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, TypeVar

from tqdm import tqdm

from concept_weights.collection import DocumentTable, SignTable, WeightTable
from concept_weights.errors import MalformedInputError
from concept_weights.preferences import Preference, PreferenceKind

logger = logging.getLogger(__name__)

T = TypeVar("T")
PathLike = str | Path


# =============================================================================
# Line helpers
# =============================================================================


def _records(
    lines: Iterable[str], path: PathLike | None = None
) -> Iterator[tuple[int, str, list[str]]]:
    """Yield ``(line_number, raw_line, fields)`` for non-blank, non-comment lines."""
    numbered = enumerate(lines, start=1)
    line_number = 0
    while True:
        try:
            line_number, line = next(numbered)
        except StopIteration:
            return
        except UnicodeDecodeError as exc:
            # Decoding runs ahead in blocks, so the line number is approximate.
            raise MalformedInputError(
                path, line_number + 1, "", f"not valid UTF-8: {exc.reason}"
            ) from exc
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        yield line_number, line, stripped.split()


def _convert(
    path: PathLike | None,
    line_number: int,
    line: str,
    convert: Callable[[str], T],
    value: str,
) -> T:
    try:
        return convert(value)
    except ValueError as exc:
        raise MalformedInputError(path, line_number, line, str(exc)) from exc


@contextmanager
def _open_lines(path: PathLike, desc: str, progress: bool) -> Iterator[Iterable[str]]:
    with open(path, encoding="utf-8") as handle:
        yield tqdm(handle, desc=desc, unit="line", disable=not progress, leave=False)


# =============================================================================
# Preferences
# =============================================================================


def parse_preferences(
    lines: Iterable[str], path: PathLike | None = None
) -> list[Preference]:
    preferences = []
    for line_number, line, fields in _records(lines, path):
        if len(fields) not in (4, 5):
            raise MalformedInputError(
                path, line_number, line, "expected <type> <query> <doc1> <doc2>"
            )
        kind = _convert(path, line_number, line, PreferenceKind.parse, fields[0])
        query, doc1, doc2 = (
            _convert(path, line_number, line, int, f) for f in fields[1:4]
        )
        delta = 0.0
        if len(fields) == 5:
            delta = _convert(path, line_number, line, float, fields[4])
        preferences.append(Preference(kind, query, doc1, doc2, delta))
    return preferences


def read_preferences(path: PathLike, progress: bool = False) -> list[Preference]:
    with _open_lines(path, "Reading preferences", progress) as lines:
        preferences = parse_preferences(lines, path)
    logger.info("Read %d preferences from %s", len(preferences), path)
    return preferences


# =============================================================================
# Concept/sign association
# =============================================================================


def parse_concepts(lines: Iterable[str], path: PathLike | None = None) -> SignTable:
    signs = SignTable()
    current: int | None = None
    for line_number, line, fields in _records(lines, path):
        text = " ".join(fields)
        if text.endswith(":"):
            current = _convert(path, line_number, line, int, text[:-1].strip())
            signs.add_sign(current)
            continue
        if len(fields) != 1:
            raise MalformedInputError(
                path, line_number, line, "expected one concept id"
            )
        if current is None:
            raise MalformedInputError(
                path, line_number, line, "concept outside of a sign block"
            )
        signs.add_concept(current, _convert(path, line_number, line, int, fields[0]))
    return signs


def read_concepts(path: PathLike, progress: bool = False) -> SignTable:
    with _open_lines(path, "Reading atomic concepts", progress) as lines:
        signs = parse_concepts(lines, path)
    logger.info("Read %d signs from %s", len(signs), path)
    return signs


# =============================================================================
# Document descriptions
# =============================================================================


def parse_documents(
    lines: Iterable[str],
    path: PathLike | None = None,
    signs: SignTable | None = None,
    wanted: set[int] | None = None,
) -> DocumentTable:
    """
    Load document and query vectors.

    Args:
        lines: Document stream.
        path: File name used in error messages.
        signs: If given, the weighted ids are signs and are expanded onto
            their atomic concepts; otherwise they are concept ids.
        wanted: If given, only these document ids are kept.
    """
    table = DocumentTable()
    current = None
    opened = False
    for line_number, line, fields in _records(lines, path):
        if len(fields) == 1:
            doc_id = _convert(path, line_number, line, int, fields[0])
            opened = True
            current = table.add(doc_id) if wanted is None or doc_id in wanted else None
        elif len(fields) == 2:
            if not opened:
                raise MalformedInputError(
                    path, line_number, line, "weight before any document id"
                )
            ident = _convert(path, line_number, line, int, fields[0])
            weight = _convert(path, line_number, line, float, fields[1])
            if current is None:
                continue
            if signs is None:
                current.add(ident, weight)
            else:
                for concept in signs.concepts_of(ident):
                    current.add(concept, weight)
        else:
            raise MalformedInputError(
                path, line_number, line, "expected <doc-id> or <id> <weight>"
            )
    return table


def read_documents(
    path: PathLike,
    signs: SignTable | None = None,
    wanted: set[int] | None = None,
    progress: bool = False,
) -> DocumentTable:
    with _open_lines(path, "Reading document descriptions", progress) as lines:
        table = parse_documents(lines, path, signs, wanted)
    logger.info("Read %d documents/queries from %s", len(table), path)
    return table


# =============================================================================
# Concept weights (IDF values or optimized weights)
# =============================================================================


def parse_weights(lines: Iterable[str], path: PathLike | None = None) -> WeightTable:
    table = WeightTable()
    for line_number, line, fields in _records(lines, path):
        if len(fields) != 2:
            raise MalformedInputError(
                path, line_number, line, "expected <concept> <weight>"
            )
        concept = _convert(path, line_number, line, int, fields[0])
        if concept in table:
            raise MalformedInputError(
                path, line_number, line, f"duplicate concept {concept}"
            )
        table.set(concept, _convert(path, line_number, line, float, fields[1]))
    return table


def read_weights(path: PathLike, progress: bool = False) -> WeightTable:
    with _open_lines(path, "Reading weights", progress) as lines:
        table = parse_weights(lines, path)
    logger.info("Read %d concept weights from %s", len(table), path)
    return table


# =============================================================================
# Relevance judgments and RSV values
# =============================================================================


def parse_relevance(
    lines: Iterable[str], path: PathLike | None = None
) -> dict[int, dict[int, int]]:
    relevance: dict[int, dict[int, int]] = {}
    current: dict[int, int] | None = None
    for line_number, line, fields in _records(lines, path):
        text = " ".join(fields)
        if text.endswith(":"):
            query = _convert(path, line_number, line, int, text[:-1].strip())
            current = relevance.setdefault(-abs(query), {})
            continue
        if current is None:
            raise MalformedInputError(
                path, line_number, line, "document outside of a query block"
            )
        if len(fields) not in (1, 2):
            raise MalformedInputError(
                path, line_number, line, "expected <doc> [<level>]"
            )
        doc = _convert(path, line_number, line, int, fields[0])
        level = 1
        if len(fields) == 2:
            level = _convert(path, line_number, line, int, fields[1])
        current.setdefault(doc, level)
    return relevance


def read_relevance(path: PathLike, progress: bool = False) -> dict[int, dict[int, int]]:
    with _open_lines(path, "Loading relevant documents", progress) as lines:
        return parse_relevance(lines, path)


def parse_rsv(
    lines: Iterable[str], path: PathLike | None = None
) -> list[tuple[int, int, float]]:
    values = []
    for line_number, line, fields in _records(lines, path):
        if len(fields) != 3:
            raise MalformedInputError(
                path, line_number, line, "expected <query> <doc> <rsv>"
            )
        query = _convert(path, line_number, line, int, fields[0])
        doc = _convert(path, line_number, line, int, fields[1])
        values.append((query, doc, _convert(path, line_number, line, float, fields[2])))
    return values


def read_rsv(path: PathLike, progress: bool = False) -> list[tuple[int, int, float]]:
    with _open_lines(path, "Loading RSV values", progress) as lines:
        return parse_rsv(lines, path)


# =============================================================================
# Writers
# =============================================================================


def write_weights(weights: Iterable[tuple[int, float]], out: IO[str]) -> int:
    count = 0
    for concept, weight in weights:
        out.write(f"{concept}\t{weight:f}\n")
        count += 1
    return count


def write_rsv(values: Iterable[tuple[int, int, float]], out: IO[str]) -> int:
    count = 0
    for query, doc, rsv in values:
        out.write(f"{query}\t{doc}\t{rsv:f}\n")
        count += 1
    return count


def write_preferences(preferences: Iterable[Preference], out: IO[str]) -> int:
    count = 0
    for pref in preferences:
        fields = (pref.kind.value, pref.query, pref.doc1, pref.doc2, f"{pref.delta:f}")
        out.write("\t".join(str(field) for field in fields) + "\n")
        count += 1
    return count
