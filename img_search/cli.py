import argparse
import os
from typing import Optional

# macOS: allow multiple OpenMP runtimes (PyTorch, tokenizers, etc.) to coexist.
if "KMP_DUPLICATE_LIB_OK" not in os.environ:
    os.environ["KMP_DUPLICATE_LIB_OK"] = "TRUE"
# Reduce OpenMP/BLAS threads to avoid segfaults on macOS.
if "OMP_NUM_THREADS" not in os.environ:
    os.environ["OMP_NUM_THREADS"] = "1"

from . import __version__, config
from .embedding import ClipEmbedder
from .errors import EmptyCorpus, ImageSearchError, StoreNotFound
from .indexer import index_directory
from .search import search_by_text
from .store import VectorStore


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a number, got {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def _make_provider(args: argparse.Namespace) -> ClipEmbedder:
    cfg = config.ModelConfig(
        model_name=args.model or config.model.model_name,
        device=args.device or config.model.device,
    )
    return ClipEmbedder(cfg)


def _format_score(score: float) -> str:
    return f"{score * 100:.2f}%"


def cmd_index(args: argparse.Namespace) -> int:
    if args.limit is not None and args.max_items is not None and args.limit != args.max_items:
        print("Error: give the limit either positionally or with --max-items, not both.")
        return 2
    max_items = args.max_items if args.max_items is not None else args.limit
    store = VectorStore(args.db_path)

    print(f"Starting image indexing of {args.directory} (recursive search)...")
    provider = _make_provider(args)
    try:
        provider.load()
    except ImageSearchError as e:
        print(f"Error: {e}")
        return 1

    report = index_directory(
        root_dir=args.directory,
        provider=provider,
        store=store,
        max_items=max_items,
    )
    if report.unreadable_dirs:
        print(f"Skipped {len(report.unreadable_dirs)} unreadable directories (see warnings above).")
    if report.discovered == 0:
        print(f'No images found in "{args.directory}" or its subdirectories. Database left unchanged.')
        return 0

    print(f"Found {report.discovered} images, processed {report.attempted}.")
    if report.failures:
        print(f"Skipped {len(report.failures)} files that could not be embedded (see warnings above).")
    print(f"Indexing complete! Database with {report.indexed} entries saved to {store.path}")
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    query = " ".join(args.query)
    store = VectorStore(args.db_path)
    print(f'Searching for: "{query}"')

    try:
        result = search_by_text(
            query=query,
            provider=_make_provider(args),
            store=store,
            top_n=args.top_n,
            threshold=args.threshold,
        )
    except StoreNotFound:
        print(f"Database file not found at {store.path}.")
        print('Please run the "index" command first.')
        return 1
    except EmptyCorpus:
        print(f"The database at {store.path} is empty. Index a folder with images first.")
        return 1
    except ImageSearchError as e:
        print(f"Error: {e}")
        return 1

    if not result.has_matches:
        print(f"No meaningful match found (threshold {_format_score(result.threshold)}).")
        if result.closest is not None:
            print(
                f"Closest, but below threshold: {result.closest.identifier} "
                f"({_format_score(result.closest.score)})"
            )
        return 0

    print(f"Top {len(result.matches)} results:")
    for i, m in enumerate(result.matches, start=1):
        print(f"{i:02d}. score={_format_score(m.score)}, file={m.identifier}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Semantic image search CLI (text query -> images)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Path to the JSON database (default: config.paths.db_path)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="HuggingFace model id for image/text embeddings (default: config.model.model_name)",
    )
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Torch device, e.g. cpu or cuda (default: config.model.device)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # index
    p_index = subparsers.add_parser(
        "index", help="Embed all images under a folder and write the database"
    )
    p_index.add_argument("directory", type=str, help="Folder to index recursively")
    p_index.add_argument(
        "limit",
        type=_positive_int,
        nargs="?",
        default=None,
        help="Optional maximum number of images to process",
    )
    p_index.add_argument(
        "--max-items",
        type=_positive_int,
        default=None,
        help="Maximum number of images to process (same as the positional limit)",
    )
    p_index.set_defaults(func=cmd_index)

    # search
    p_search = subparsers.add_parser(
        "search", help="Find indexed images that match a text query"
    )
    p_search.add_argument("query", nargs="+", help="Free-text query; may contain spaces")
    p_search.add_argument(
        "--top-n",
        type=_positive_int,
        default=config.search.default_top_n,
        help=f"Number of results to return (default: {config.search.default_top_n})",
    )
    p_search.add_argument(
        "--threshold",
        type=float,
        default=config.search.similarity_threshold,
        help=f"Minimum cosine similarity for a match (default: {config.search.similarity_threshold})",
    )
    p_search.set_defaults(func=cmd_search)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    print(f"\n--- Image Search CLI v{__version__} ---")
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
