"""
Command line front end of the concept weight tool chain.

Usage:
    concept-weights optimize prefs.txt docs.txt idf.txt --concepts c.txt -o weights.txt
    concept-weights rsv docs.txt weights.txt --concepts concepts.txt -o rsv.txt
    concept-weights prefs relevant.txt rsv.txt -o prefs.txt
    concept-weights pr relevant.txt rsv.txt

Logging goes to stderr, results to stdout unless ``-o`` is given.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from concept_weights.config import BOUND_PRESETS, OptimizerConfig
from concept_weights.errors import ConceptWeightsError
from concept_weights.metrics import evaluate_rankings
from concept_weights.optimizer import load_problem, optimize
from concept_weights.preferences import generate_preferences
from concept_weights.readers import (
    read_concepts,
    read_documents,
    read_relevance,
    read_rsv,
    read_weights,
    write_preferences,
    write_rsv,
)
from concept_weights.rsv import calculate_rsv
from concept_weights.simplex import SolveStatus

logger = logging.getLogger("concept_weights")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

EXIT_OK = 0
EXIT_MALFORMED_INPUT = 3
EXIT_INFEASIBLE_BASIS = 4
EXIT_INFEASIBLE = 5
EXIT_ITERATION_LIMIT = 6

STATUS_EXIT_CODES = {
    SolveStatus.OPTIMAL: EXIT_OK,
    SolveStatus.INFEASIBLE_BASIS: EXIT_INFEASIBLE_BASIS,
    SolveStatus.INFEASIBLE: EXIT_INFEASIBLE,
    SolveStatus.ITERATION_LIMIT: EXIT_ITERATION_LIMIT,
}


def set_up_logger(quiet: bool = False, verbose: bool = False) -> logging.Logger:
    """Configure root logging for console output on stderr."""
    level = logging.WARNING if quiet else logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return logger


@contextmanager
def _output(path: Path | None) -> Iterator[IO[str]]:
    if path is None:
        yield sys.stdout
        return
    with open(path, "w", encoding="utf-8") as handle:
        yield handle


def _config(args: argparse.Namespace) -> OptimizerConfig:
    c1, c2 = BOUND_PRESETS[args.preset] if args.preset else (None, None)
    return OptimizerConfig.from_env(
        c1=args.c1 if args.c1 is not None else c1,
        c2=args.c2 if args.c2 is not None else c2,
        epsilon=args.epsilon,
        max_iterations=getattr(args, "max_iterations", None),
        show_progress=not args.quiet,
    )


# =============================================================================
# Sub-commands
# =============================================================================


def run_optimize(args: argparse.Namespace, config: OptimizerConfig) -> int:
    problem = load_problem(
        args.preferences,
        args.documents,
        args.idf,
        concepts=args.concepts,
        progress=config.show_progress,
    )
    result = optimize(problem.preferences, problem.documents, problem.idf, config)
    if not result.ok:
        return STATUS_EXIT_CODES[result.status]
    with _output(args.output) as out:
        count = result.emit(out)
    logger.info("Wrote %d concept weights (%d optimized)", count, len(result.columns))
    return EXIT_OK


def run_rsv(args: argparse.Namespace, config: OptimizerConfig) -> int:
    progress = config.show_progress
    signs = read_concepts(args.concepts, progress=progress) if args.concepts else None
    documents = read_documents(args.documents, signs=signs, progress=progress)
    weights = read_weights(args.weights, progress=progress)
    with _output(args.output) as out:
        count = write_rsv(calculate_rsv(documents, weights), out)
    logger.info("Wrote %d RSV values", count)
    return EXIT_OK


def run_prefs(args: argparse.Namespace, config: OptimizerConfig) -> int:
    relevance = read_relevance(args.relevance, progress=config.show_progress)
    rsv = read_rsv(args.rsv, progress=config.show_progress)
    preferences, _ = generate_preferences(relevance, rsv, config, query=args.query)
    with _output(args.output) as out:
        write_preferences(preferences, out)
    return EXIT_OK


def run_pr(args: argparse.Namespace, config: OptimizerConfig) -> int:
    relevance = read_relevance(args.relevance, progress=config.show_progress)
    rsv = read_rsv(args.rsv, progress=config.show_progress)
    report = evaluate_rankings(relevance, rsv)
    with _output(args.output) as out:
        out.write(report.format())
    return EXIT_OK


# =============================================================================
# Argument parsing
# =============================================================================


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o", "--output", type=Path, default=None, help="Output file (default: stdout)."
    )
    parser.add_argument(
        "--quiet", action="store_true", help="Only log warnings; no progress bars."
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-pivot details.")
    parser.add_argument(
        "--preset",
        choices=sorted(BOUND_PRESETS),
        default=None,
        help="Named C1/C2 bound pair (default: $CONCEPT_WEIGHTS_C1/_C2 or 0.5/2.0).",
    )
    parser.add_argument(
        "--c1", type=float, default=None, help="Lower bound multiplier, 0 < C1 < 1."
    )
    parser.add_argument(
        "--c2", type=float, default=None, help="Upper bound multiplier, C2 > 1."
    )
    parser.add_argument(
        "--epsilon",
        type=float,
        default=None,
        help="Round-off tolerance (default: 1e-5).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="concept-weights",
        description="Learn concept weights from relevance preferences.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit status:
  0  success
  2  usage error
  3  malformed input or dangling reference
  4  no initial feasible basis
  5  no feasible or bounded optimum
  6  iteration limit reached
""",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Optimize concept weights.")
    opt.add_argument("preferences", type=Path, help="Preference file (+/-/C lines).")
    opt.add_argument("documents", type=Path, help="Document description file.")
    opt.add_argument("idf", type=Path, help="IDF file (<concept> <idf>).")
    opt.add_argument(
        "--concepts", type=Path, default=None, help="Concept/sign association file."
    )
    opt.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Pivot loop ceiling (default: 100000).",
    )
    _add_common(opt)
    opt.set_defaults(handler=run_optimize)

    rsv = sub.add_parser(
        "rsv", help="Compute RSV values of all queries against all documents."
    )
    rsv.add_argument("documents", type=Path, help="Document description file.")
    rsv.add_argument("weights", type=Path, help="Concept weight file.")
    rsv.add_argument(
        "--concepts", type=Path, default=None, help="Concept/sign association file."
    )
    _add_common(rsv)
    rsv.set_defaults(handler=run_rsv)

    prefs = sub.add_parser(
        "prefs", help="Derive preferences from relevance judgments and RSV values."
    )
    prefs.add_argument("relevance", type=Path, help="Relevance file (<query>: blocks).")
    prefs.add_argument("rsv", type=Path, help="RSV file (<query> <doc> <rsv>).")
    prefs.add_argument(
        "--query", type=int, default=None, help="Emit -/C preferences of one query."
    )
    _add_common(prefs)
    prefs.set_defaults(handler=run_prefs)

    pr = sub.add_parser("pr", help="Precision/recall report of RSV rankings.")
    pr.add_argument("relevance", type=Path, help="Relevance file (<query>: blocks).")
    pr.add_argument("rsv", type=Path, help="RSV file (<query> <doc> <rsv>).")
    _add_common(pr)
    pr.set_defaults(handler=run_pr)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_up_logger(quiet=args.quiet, verbose=args.verbose)

    try:
        config = _config(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        return args.handler(args, config)
    except (ConceptWeightsError, OSError) as exc:
        logger.error("%s", exc)
        return EXIT_MALFORMED_INPUT


if __name__ == "__main__":
    sys.exit(main())
