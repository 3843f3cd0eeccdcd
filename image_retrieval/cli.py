"""
Command-line interface.

    image-retrieval search QUERY IMAGE_DIR [--scheme rg:16] [--top-k 4]
    image-retrieval search QUERY --index INDEX_DIR [--scheme texture]
    image-retrieval index IMAGE_DIR OUTPUT_DIR [--scheme texture]

Schemes: baseline, rg[:bins], rgb[:bins], spatial, texture, embedding,
composite. Embedding schemes need --embeddings pointing at a CSV file.
"""

import os
import sys
import json
import logging
import argparse

from .embeddings import EmbeddingTable
from .engine import RetrievalEngine, SearchSession
from .errors import QueryExtractionError, SchemeMismatch
from .index_builder import (
    build_feature_index, iter_image_files, load_candidates, load_feature_index, load_image,
)
from .schemes import Scheme

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = int(os.environ.get("DEFAULT_TOP_K", "4"))


def _load_embeddings(args, scheme):
    if not scheme.needs_embeddings:
        return None
    if not args.embeddings:
        print(f"Error: scheme '{scheme.label}' requires --embeddings", file=sys.stderr)
        return False
    try:
        return EmbeddingTable.from_csv(args.embeddings)
    except (OSError, ValueError) as e:
        print(f"Error: failed to load embeddings: {e}", file=sys.stderr)
        return False


def search_command(args) -> int:
    """Execute similarity search from command line"""
    scheme = args.scheme
    embeddings = _load_embeddings(args, scheme)
    if embeddings is False:
        return 1

    query_id = os.path.basename(args.query)
    query_image = None
    if scheme.needs_pixels:
        query_image = load_image(args.query)
        if query_image is None:
            print(f"Error: failed to load query image {args.query}", file=sys.stderr)
            return 2

    engine = RetrievalEngine(SearchSession(embeddings=embeddings))

    try:
        if args.index:
            _, records = load_feature_index(args.index, expected=scheme)
            query_features = engine.extract_query(scheme, image=query_image, identifier=query_id)
            result = engine.rank(scheme, query_features, records, args.top_k,
                                 suppress_self_match=args.exclude_self)
        else:
            # Embedding schemes rank by file name alone
            if scheme.needs_pixels:
                candidates = load_candidates(args.image_dir)
            else:
                candidates = iter_image_files(args.image_dir)
            result = engine.search(scheme, candidates, args.top_k,
                                   query_image=query_image, query_id=query_id,
                                   suppress_self_match=args.exclude_self)
    except QueryExtractionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (SchemeMismatch, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Found {result.found} images. Top {len(result)} similar images:")
    for i, match in enumerate(result, 1):
        print(f"{i}: {match.identifier} (distance: {match.distance:.6g})")

    if args.output:
        output_data = {
            "query": query_id,
            "scheme": scheme.label,
            "found": result.found,
            "skipped": result.skipped,
            "results": [
                {"filename": m.identifier, "distance": float(m.distance)}
                for m in result
            ],
        }
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=2)
        print(f"\nResults saved to: {args.output}")

    return 0


def index_command(args) -> int:
    """Build a precomputed feature index"""
    scheme = args.scheme
    embeddings = _load_embeddings(args, scheme)
    if embeddings is False:
        return 1

    try:
        stats = build_feature_index(args.image_dir, args.output_dir, scheme, embeddings)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not stats["success"]:
        print(f"Error: {stats['error']}", file=sys.stderr)
        return 1

    print(f"Indexed {stats['processed']} images ({stats['dimensions']}d, "
          f"{stats['errors']} errors) → {stats['index_path']}")
    return 0


def _scheme_arg(text: str) -> Scheme:
    try:
        return Scheme.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-retrieval",
        description="Content-based image retrieval"
    )
    parser.add_argument('--log-level', default=os.environ.get("LOG_LEVEL", "WARNING"),
                        help='Logging level (default: WARNING or $LOG_LEVEL)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    subparsers.required = True

    # Search command
    search_parser = subparsers.add_parser('search', help='Find similar images')
    search_parser.add_argument('query', help='Query image path')
    search_parser.add_argument('image_dir', nargs='?',
                               help='Directory of candidate images (not needed with --index)')
    search_parser.add_argument('--scheme', type=_scheme_arg, default=Scheme.baseline(),
                               help='Feature scheme (default: baseline)')
    search_parser.add_argument('--top-k', type=int, default=DEFAULT_TOP_K,
                               help='Number of results')
    search_parser.add_argument('--embeddings', help='Embedding CSV file')
    search_parser.add_argument('--index', help='Precomputed feature index directory')
    search_parser.add_argument('--exclude-self', action='store_true',
                               help='Drop a leading near-zero-distance match')
    search_parser.add_argument('--output', help='Output JSON file')
    search_parser.set_defaults(func=search_command)

    # Index command
    index_parser = subparsers.add_parser('index', help='Precompute features for a directory')
    index_parser.add_argument('image_dir', help='Directory of images')
    index_parser.add_argument('output_dir', help='Directory to write the index to')
    index_parser.add_argument('--scheme', type=_scheme_arg, default=Scheme.baseline(),
                              help='Feature scheme (default: baseline)')
    index_parser.add_argument('--embeddings', help='Embedding CSV file')
    index_parser.set_defaults(func=index_command)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == 'search' and not args.index and not args.image_dir:
        parser.error('search needs IMAGE_DIR unless --index is given')

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
