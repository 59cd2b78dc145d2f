"""Command-line front end: fetch, search, bulk-fetch and render bibliographies."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

import yaml

from citekit.bibliography import SORT_ORDERS, BibliographyGenerator, BibliographyOptions
from citekit.config import CitekitConfig, load_config
from citekit.errors import BulkResult, FetchError, FetchResult
from citekit.fetchers import SOURCE_NAMES, Fetcher, create_fetchers, detect_source
from citekit.formatter import STYLES
from citekit.storage import InMemoryStore


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="citekit",
        description="Fetch bibliographic metadata and render citations.",
    )
    p.add_argument("--config", help="YAML configuration file")
    p.add_argument("--cache", help="On-disk cache file shared by all sources (default: in-memory)")
    p.add_argument("--timeout", type=float, help="HTTP timeout seconds")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")

    sub = p.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="Fetch one record and print it as CSL JSON")
    fetch.add_argument("identifier", help="DOI, PMID, ISBN or URL")
    fetch.add_argument("--source", choices=SOURCE_NAMES, help="Force a source instead of auto-detection")

    search = sub.add_parser("search", help="Search a source")
    search.add_argument("source", choices=SOURCE_NAMES)
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10, help="Maximum results (default 10)")
    search.add_argument("--offset", type=int, default=0, help="Result offset (default 0)")

    bulk = sub.add_parser("bulk", help="Fetch many identifiers from one source")
    bulk.add_argument("source", choices=SOURCE_NAMES)
    bulk.add_argument("identifiers", nargs="+")

    bib = sub.add_parser("bibliography", help="Render the bibliography of a document in a JSON store")
    bib.add_argument("store", help="JSON file with references, citations and bibliographies")
    bib.add_argument("document_id")
    bib.add_argument("--style", choices=STYLES, default="apa", help="Citation style (default apa)")
    bib.add_argument("--sort", choices=SORT_ORDERS, default="alphabetical", help="Sort order (default alphabetical)")
    bib.add_argument("--title", default="References", help="Heading of the bibliography")
    bib.add_argument("--hanging-indent", action=argparse.BooleanOptionalAction, default=True)
    bib.add_argument("--no-urls", action="store_true", help="Leave URLs out of the entries")
    bib.add_argument("--no-doi", action="store_true", help="Leave DOIs out of the entries")
    bib.add_argument("--save", action="store_true", help="Write the stored artifact back to the store file")
    return p


def init_logging(verbose: bool) -> logging.Logger:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    return logging.getLogger("citekit")


def build_config(args: argparse.Namespace) -> CitekitConfig:
    """Config file, then environment credentials, then command-line overrides."""
    config = load_config(args.config).with_env()
    if args.cache:
        config.cache_path = args.cache
    if args.timeout:
        config.timeout = args.timeout
    return config


def emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _report_error(result: FetchResult[Any], logger: logging.Logger) -> int:
    error: FetchError = result.error  # type: ignore[assignment]
    logger.error("%s: %s", error.kind.value, error.message)
    emit({"error": error.to_dict()})
    return 1


def cmd_fetch(args: argparse.Namespace, fetchers: dict[str, Fetcher], logger: logging.Logger) -> int:
    source = args.source or detect_source(args.identifier)
    if source is None:
        logger.error("Could not detect the source of %r; pass --source", args.identifier)
        return 1
    logger.debug("Fetching %s from %s", args.identifier, source)
    result = fetchers[source].fetch(args.identifier)
    if not result.ok:
        return _report_error(result, logger)
    emit(result.value.to_csl())  # type: ignore[union-attr]
    return 0


def cmd_search(args: argparse.Namespace, fetchers: dict[str, Fetcher], logger: logging.Logger) -> int:
    result = fetchers[args.source].search(args.query, limit=args.limit, offset=args.offset)
    if not result.ok:
        return _report_error(result, logger)
    page = result.value
    emit(
        {
            "query": page.query,
            "total_results": page.total_results,
            "items_per_page": page.items_per_page,
            "items": [
                {"score": hit.score, "snippet": hit.snippet, "reference": hit.reference.to_csl()} for hit in page.items
            ],
        }
    )
    return 0


def _bulk_payload(result: BulkResult) -> dict[str, Any]:
    summary = result.summary_error()
    return {
        "successful": [ref.to_csl() for ref in result.successful],
        "failed": [f.to_dict() for f in result.failed],
        "error": summary.to_dict() if summary else None,
    }


def cmd_bulk(args: argparse.Namespace, fetchers: dict[str, Fetcher], logger: logging.Logger) -> int:
    result = fetchers[args.source].bulk_fetch(args.identifiers)
    logger.info("Bulk %s: %d fetched, %d failed", args.source, len(result.successful), len(result.failed))
    emit(_bulk_payload(result))
    return 1 if result.partial else 0


def cmd_bibliography(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        store = InMemoryStore.load(args.store)
    except (OSError, ValueError, KeyError) as e:
        logger.error("Failed to load store %s: %s", args.store, e)
        return 1
    generator = BibliographyGenerator(store, logger=logger)
    options = BibliographyOptions(
        title=args.title,
        include_urls=not args.no_urls,
        include_doi=not args.no_doi,
        hanging_indent=args.hanging_indent,
    )
    bibliography = generator.regenerate_if_needed(args.document_id, args.style, args.sort, options)
    if args.save:
        store.dump(args.store)
    print(bibliography.rendered_html)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the citekit CLI.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code: 0=success, 1=error or partial bulk failure.
    """
    args = build_arg_parser().parse_args(argv)
    logger = init_logging(args.verbose)

    if args.command == "bibliography":
        return cmd_bibliography(args, logger)

    try:
        config = build_config(args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Failed to load config %s: %s", args.config, e)
        return 1
    fetchers = create_fetchers(config, logger=logger)
    if args.command == "fetch":
        return cmd_fetch(args, fetchers, logger)
    if args.command == "search":
        return cmd_search(args, fetchers, logger)
    return cmd_bulk(args, fetchers, logger)


if __name__ == "__main__":
    sys.exit(main())
