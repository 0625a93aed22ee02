"""
Ingestion command line.

Usage:
    kb-ingest [--clean | --no-clean] /path/to/knowledge-base

`--clean` (the default) replaces every stored document; `--no-clean`
appends. Exit status is 0 on success (including an empty corpus), 1 on any
fatal error and 2 on usage errors.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..core.errors import AssistantError, InputValidationError
from ..db import AsyncSessionLocal, DocumentStore, async_engine, init_db
from ..embeddings.embedder import Embedder
from .corpus import CorpusIngestor, IngestReport

logger = logging.getLogger("kb.ingest.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kb-ingest",
        allow_abbrev=False,
        description="Chunk, embed and store a knowledge base directory.",
    )
    parser.add_argument(
        "corpus_path",
        help="Knowledge base directory to ingest.",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Delete all stored documents before writing (default: --clean).",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments; usage errors exit with status 2."""
    return build_parser().parse_args(argv)


def _print_progress(done: int, total: int) -> None:
    print(f"Inserted {done} / {total}")


async def run(corpus_path: str, clean: bool) -> IngestReport:
    root = Path(corpus_path).resolve()
    if not root.is_dir():
        raise InputValidationError(
            f"Knowledge base path does not exist or is not a directory: {root}"
        )

    # Configuration is validated before any file is read
    embedder = Embedder()

    print(f"Reading knowledge base from: {root}")
    if clean:
        print("Existing documents will be replaced.")

    try:
        await init_db()
        async with AsyncSessionLocal() as session:
            ingestor = CorpusIngestor(
                DocumentStore(session),
                embedder,
                progress=_print_progress,
            )
            return await ingestor.ingest(root, clean=clean)
    finally:
        await async_engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        report = asyncio.run(run(args.corpus_path, args.clean))
    except AssistantError as exc:
        print(f"Ingestion failed: {exc}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Ingestion failed with an unexpected error")
        return 1

    if report.total_chunks == 0:
        print("No chunks found. Nothing to ingest.")
    else:
        print(
            f"Ingestion completed successfully: {report.records_written} chunks "
            f"from {report.markdown_files} markdown and "
            f"{report.transcript_files} transcript files."
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
