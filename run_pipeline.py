#!/usr/bin/env python3
"""CLI for the retrieval engine: ingest documents, search, build context."""

import argparse
import logging
import sys

from core.config import settings


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )


def cmd_ingest(args: argparse.Namespace) -> None:
    """Index a document for a user/company/session."""
    from core.models import ChunkOptions, ScopeFilter
    from ingestion.embedder import OpenAIEmbedder
    from ingestion.loader import load_file
    from ingestion.pipeline import index_document
    from storage.analytics import LoggingAnalyticsSink
    from storage.vector_store import Neo4jChunkStore

    store = Neo4jChunkStore()

    print("Initializing indexes...")
    store.init_index()

    print(f"Loading: {args.file}")
    loaded = load_file(args.file, use_gpu=args.gpu)
    print(f"  Loaded {len(loaded.text)} characters")

    options = ChunkOptions(
        strategy=args.strategy,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        min_chunk_size=settings.min_chunk_size,
    )
    print(f"Indexing (strategy={options.strategy}, size={options.chunk_size}, "
          f"overlap={options.chunk_overlap})...")

    report = index_document(
        loaded.text,
        loaded.file_name,
        loaded.file_type,
        loaded.file_size,
        scope=ScopeFilter(
            user_id=args.user, company_id=args.company, session_id=args.session
        ),
        store=store,
        embedder=OpenAIEmbedder(),
        chunk_options=options,
        tags=args.tag,
        analytics=LoggingAnalyticsSink(),
    )
    print(f"  Stored {report.chunk_count} chunks ({report.failed_chunks} failed)")
    print(f"  Document id: {report.document_id}")

    total = store.count()
    print(f"\nDone! Total chunks in store: {total}")
    store.close()


def cmd_search(args: argparse.Namespace) -> None:
    """Run a manual search and print ranked results."""
    from core.models import SearchOptions
    from retrieval.retriever import Retriever
    from storage.analytics import LoggingAnalyticsSink
    from storage.vector_store import Neo4jChunkStore

    store = Neo4jChunkStore()
    retriever = Retriever(store)

    options = SearchOptions(
        user_id=args.user,
        company_id=args.company,
        session_id=args.session,
        limit=args.limit,
        min_similarity=args.min_similarity,
        hybrid_mode=not args.semantic_only,
    )
    print(f"Query: {args.query}")
    response = retriever.search(
        args.query, options, analytics=LoggingAnalyticsSink(), event_type="manual_search"
    )

    metrics = response.metrics
    print(f"\n{metrics.results_count} results in {metrics.duration}ms "
          f"(embedding {metrics.embedding_time}ms, search {metrics.search_time}ms)")
    for i, result in enumerate(response.results, 1):
        preview = result.content[:100].replace("\n", " ")
        print(f"  {i}. [{result.similarity:.3f}] {result.document.file_name}: {preview}...")

    store.close()


def cmd_context(args: argparse.Namespace) -> None:
    """Build the enriched context for a question."""
    from core.models import RAGIntegrationOptions
    from generation.context import inject_rag_context
    from generation.quality import calculate_rag_quality_score
    from retrieval.retriever import Retriever
    from storage.analytics import LoggingAnalyticsSink
    from storage.vector_store import Neo4jChunkStore

    store = Neo4jChunkStore()
    retriever = Retriever(store)

    result = inject_rag_context(
        args.question,
        args.existing,
        RAGIntegrationOptions(
            user_id=args.user,
            company_id=args.company,
            session_id=args.session,
            hybrid_search=False if args.semantic_only else None,
        ),
        retriever,
        analytics=LoggingAnalyticsSink(),
    )

    print(result.enriched_context or "(empty context)")
    print(f"\nRAG used: {result.rag_used}")
    print(f"Sources: {result.sources_count}")
    print(f"Quality: {calculate_rag_quality_score(result)}/100")

    store.close()


def cmd_clear(args: argparse.Namespace) -> None:
    """Clear all documents and chunks from the store."""
    from storage.vector_store import Neo4jChunkStore

    store = Neo4jChunkStore()
    count = store.delete_all()
    print(f"Deleted {count} chunks from store")
    store.close()


def cmd_stats(args: argparse.Namespace) -> None:
    """Show store statistics."""
    from storage.vector_store import Neo4jChunkStore

    store = Neo4jChunkStore()
    total = store.count()
    print(f"Total chunks in store: {total}")
    store.close()


def _add_scope_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", required=True, help="Owner user id")
    parser.add_argument("--company", default=None, help="Company id")
    parser.add_argument("--session", default=None, help="Session id")


def main() -> None:
    parser = argparse.ArgumentParser(description="Retrieval engine CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ingest
    p_ingest = subparsers.add_parser("ingest", help="Index a document")
    p_ingest.add_argument("file", help="Path to document file")
    _add_scope_arguments(p_ingest)
    p_ingest.add_argument(
        "--strategy",
        choices=["recursive", "semantic", "fixed"],
        default=settings.chunk_strategy,
        help="Chunking strategy",
    )
    p_ingest.add_argument("--tag", action="append", default=None, help="Document tag")
    p_ingest.add_argument("--gpu", action="store_true", help="GPU for PDF conversion")

    # search
    p_search = subparsers.add_parser("search", help="Search indexed documents")
    p_search.add_argument("query", help="Search query")
    _add_scope_arguments(p_search)
    p_search.add_argument("--limit", type=int, default=None, help="Max results")
    p_search.add_argument(
        "--min-similarity", type=float, default=None, help="Similarity floor (0-1)"
    )
    p_search.add_argument(
        "--semantic-only", action="store_true", help="Disable hybrid search"
    )

    # context
    p_context = subparsers.add_parser("context", help="Build enriched context")
    p_context.add_argument("question", help="Question to build context for")
    _add_scope_arguments(p_context)
    p_context.add_argument("--existing", default=None, help="Existing context text")
    p_context.add_argument(
        "--semantic-only", action="store_true", help="Disable hybrid search"
    )

    # clear
    subparsers.add_parser("clear", help="Clear all documents and chunks")

    # stats
    subparsers.add_parser("stats", help="Show store statistics")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "ingest": cmd_ingest,
        "search": cmd_search,
        "context": cmd_context,
        "clear": cmd_clear,
        "stats": cmd_stats,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
