"""library_cli.py
Command-line entry point for the reference extraction pipeline.

This module only handles CLI parsing and printing and delegates all heavy
lifting to :pyfunc:`src.library.pipeline.build_pipeline`.

    python -m src.library_cli extract https://arxiv.org/abs/1706.03762
    python -m src.library_cli batch urls.txt --concurrency 4
    python -m src.library_cli classify "protein folding in yeast cells"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from tqdm import tqdm

from src.classification.discipline import train_classifier
from src.classification.doctype import detect_type
from src.classification.keywords import extract_keywords
from src.common.entities import ReferenceRecord
from src.common.errors import PipelineError
from src.common.settings import settings
from src.library.pipeline import build_pipeline

logger = logging.getLogger(__name__)


def _print_record(rank: int, record: ReferenceRecord) -> None:
    year = record.publication_year or "?"
    print(f"{rank}. {record.title} ({year})")
    if record.authors:
        print(f"   Authors: {', '.join(record.authors)}")
    print(f"   Type: {record.type.value}  Discipline: {record.discipline}")
    if record.keywords:
        print(f"   Keywords: {', '.join(record.keywords)}")
    if record.url:
        print(f"   URL: {record.url}")
    if record.id:
        print(f"   ID: {record.id}")


def _read_urls(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [ln.strip() for ln in lines if ln.strip() and not ln.lstrip().startswith("#")]


async def _extract(url: str, type_hint: str | None) -> int:
    async with build_pipeline() as pipeline:
        record = await pipeline.library.add_from_url(url, type_hint)
    _print_record(1, record)
    return 0


async def _batch(path: Path, concurrency: int) -> int:
    urls = _read_urls(path)
    if not urls:
        logger.warning("No URLs found in %s", path)
        return 0

    semaphore = asyncio.Semaphore(concurrency)
    records: list[ReferenceRecord] = []
    failures = 0

    async with build_pipeline() as pipeline:
        with tqdm(total=len(urls), desc="Extracting references", unit="url") as progress:

            async def _worker(url: str) -> None:
                nonlocal failures
                async with semaphore:
                    try:
                        records.append(await pipeline.orchestrator.extract_and_classify(url))
                    except PipelineError as exc:
                        failures += 1
                        logger.error("Skipping %s: %s", url, exc)
                    finally:
                        progress.update(1)

            await asyncio.gather(*(_worker(u) for u in urls))

        saved = await asyncio.to_thread(pipeline.store.save_many, records)

    logger.info("Stored %d/%d references", len(saved), len(urls))
    return 1 if failures else 0


async def _search(term: str, limit: int) -> int:
    async with build_pipeline() as pipeline:
        page = await pipeline.library.find(search=term, limit=limit)
    if not page.items:
        print("No matches")
        return 0
    for i, record in enumerate(page.items, 1):
        _print_record(i, record)
    print(f"({page.total} total)")
    return 0


async def _stats() -> int:
    async with build_pipeline() as pipeline:
        stats = await pipeline.library.stats()
    print(f"Total references: {stats.total}")
    print("By type:")
    for value, count in stats.by_type:
        print(f"   {value}: {count}")
    print("By discipline:")
    for value, count in stats.by_discipline:
        print(f"   {value}: {count}")
    return 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Extract, classify and store bibliographic references.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("extract", help="Extract one URL and store it")
    p.add_argument("url")
    p.add_argument("--type", dest="type_hint", default=None, help="journal|thesis|book|report")

    p = sub.add_parser("batch", help="Extract every URL listed in a file")
    p.add_argument("file", type=Path)
    p.add_argument("--concurrency", type=int, default=4, help="Concurrent extractions")

    p = sub.add_parser("classify", help="Print the discipline ranking for TEXT")
    p.add_argument("text")

    p = sub.add_parser("keywords", help="Print the keywords of TEXT")
    p.add_argument("text")

    p = sub.add_parser("detect-type", help="Infer the document type")
    p.add_argument("--url", default=None)
    p.add_argument("--title", default=None)
    p.add_argument("--abstract", default=None)

    p = sub.add_parser("search", help="Full-text search over stored references")
    p.add_argument("term")
    p.add_argument("--limit", type=int, default=5)

    sub.add_parser("stats", help="Type and discipline distribution")
    return parser.parse_args()


def main() -> None:  # noqa: D401
    """Parse CLI options and run the selected command."""

    args = _parse_args()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "classify":
        for label, confidence in train_classifier().classify_with_confidence(args.text):
            print(f"{label}: {confidence:.4f}")
        return
    if args.command == "keywords":
        print(", ".join(extract_keywords(args.text)))
        return
    if args.command == "detect-type":
        print(detect_type(args.url, args.title, args.abstract).value)
        return

    if args.command == "extract":
        coro = _extract(args.url, args.type_hint)
    elif args.command == "batch":
        coro = _batch(args.file, args.concurrency)
    elif args.command == "search":
        coro = _search(args.term, args.limit)
    else:
        coro = _stats()

    try:
        raise SystemExit(asyncio.run(coro))
    except PipelineError as exc:
        raise SystemExit(f"error: {exc}") from exc


if __name__ == "__main__":
    main()
