"""
Command-Line Interface for News Chat

Provides CLI commands for:
- Feed ingestion into the article store
- Article search (retrieval only)
- Single questions and interactive multi-turn chat
- Startup checks, statistics and store reset
"""

import sys
import argparse
import logging
from typing import List, Optional

from .main_pipeline import LOG_FORMAT, NewsChatSystem


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def print_answer(result, show_sources: bool = True):
    """Print an answer with its sources."""
    print("Answer:")
    print(result['answer'])
    print()

    if show_sources and result.get('sources'):
        print("Sources:")
        for i, source in enumerate(result['sources'], 1):
            print(f"  [{i}] {source['title']} ({source['source']})")
            print(f"      {source['url']}")
        print()

    if result.get('degraded'):
        print("(Embedding service unavailable - search quality reduced)")
    print(f"Response time: {result['response_time']:.2f}s")


def cmd_ingest(args):
    """Handle the ingest command."""
    system = NewsChatSystem()

    feeds = args.feed or None
    print(f"Ingesting from {len(feeds) if feeds else len(system.config.news_feeds)} feed(s)")
    summary = system.refresh_news(feeds, show_progress=True)

    print(f"\n{'='*60}")
    print("Ingestion Summary:")
    print(f"  Articles found: {summary['total']}")
    print(f"  Stored: {summary['stored']}")
    print(f"  Skipped (already stored): {summary['skipped']}")
    print(f"  Failed: {summary['failed']}")
    print(f"  Fallback embeddings: {summary['degraded']}")
    print(f"  Processing time: {summary['processing_time']:.2f}s")
    print(f"{'='*60}")


def cmd_search(args):
    """Handle the search command."""
    system = NewsChatSystem()

    print(f"Searching for: {args.query}")
    print()

    results = system.search(args.query, top_k=args.top_k)

    if not results:
        print("No results found.")
        return

    print(f"Found {len(results)} results:\n")

    for i, result in enumerate(results, 1):
        article = result.article
        print(f"[{i}] {article.title}")
        print(f"    URL: {article.url}")
        print(f"    Score: {result.score:.3f} ({result.origin})")
        print(f"    Summary: {article.summary[:200]}")
        print()


def cmd_ask(args):
    """Handle the ask command."""
    system = NewsChatSystem()

    print(f"Question: {args.question}")
    print()

    result = system.ask(args.question, session_id=args.session, top_k=args.top_k)
    print_answer(result, show_sources=not args.no_sources)
    print(f"Session ID: {result['session_id']}")


def cmd_chat(args):
    """Handle the interactive chat command."""
    system = NewsChatSystem()
    session_id = system.conversation_manager.create_session()

    status = system.check_services()
    if not status['ok']:
        print(f"⚠ {status['error']}")
        print("  Continuing with fallback embeddings; search quality will be reduced.\n")

    print("News chat - type 'exit' to quit, 'reset' to start a new conversation.\n")

    while True:
        try:
            question = input("You: ").strip()
        except EOFError:
            print()
            break

        if not question:
            continue
        if question.lower() in ('exit', 'quit'):
            break
        if question.lower() == 'reset':
            session_id = system.conversation_manager.create_session()
            print("Started a new conversation.\n")
            continue

        result = system.ask(question, session_id=session_id, top_k=args.top_k)
        print()
        print_answer(result, show_sources=not args.no_sources)
        print()


def cmd_topics(args):
    """Handle the topics command."""
    system = NewsChatSystem()

    print("Topics in the current news corpus:")
    for topic in system.rag_service.available_topics():
        print(f"  - {topic}")


def cmd_check(args):
    """Handle the check command."""
    system = NewsChatSystem()

    status = system.check_services()
    if status['ok']:
        print("✓ Ollama is reachable and the embedding model is available")
    else:
        print(f"✗ {status['error']}")
        sys.exit(1)


def cmd_stats(args):
    """Handle the stats command."""
    system = NewsChatSystem()

    stats = system.get_stats()

    print("="*60)
    print("System Statistics")
    print("="*60)

    store_stats = stats['store_stats']
    print("Article Store:")
    print(f"  Articles: {store_stats.get('total_articles', 0)}")
    print(f"  Dimension: {store_stats.get('dimension', 'N/A')}")
    print(f"  Index Type: {store_stats.get('index_type', 'N/A')}")
    print()

    print("Embedding Cache:")
    cache_stats = stats['cache_stats']
    print(f"  Cache Size: {cache_stats.get('cache_size', 0)}")
    print(f"  Hit Rate: {cache_stats.get('hit_rate', 0):.2%}")
    print(f"  Fallback Embeddings: {cache_stats.get('degraded', 0)}")
    print()

    retrieval = stats['retrieval_config']
    print("Retrieval:")
    print(f"  Default top-k: {retrieval['top_k_default']}")
    print(f"  Denylist terms: {retrieval['denylist_size']}")
    print(f"  Categories: {', '.join(retrieval['categories'])}")
    print("="*60)


def cmd_clear(args):
    """Handle the clear command."""
    if not args.yes:
        print("✗ Refusing to clear the article store without --yes")
        sys.exit(1)

    system = NewsChatSystem()
    system.clear()
    print("✓ Article store cleared")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description='News Chat - conversational Q&A over recent news articles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest the configured feeds
  python -m newschat.cli ingest

  # Ingest a specific feed
  python -m newschat.cli ingest --feed https://feeds.bbci.co.uk/news/rss.xml

  # Search without generating an answer
  python -m newschat.cli search "federal reserve interest rates"

  # Ask a question
  python -m newschat.cli ask "What did the Fed decide?"

  # Start an interactive conversation
  python -m newschat.cli chat
        """
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    ingest_parser = subparsers.add_parser('ingest', help='Fetch feeds and store new articles')
    ingest_parser.add_argument(
        '--feed',
        action='append',
        help='Feed URL to ingest (repeatable, default: configured feeds)'
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    search_parser = subparsers.add_parser('search', help='Search for relevant articles')
    search_parser.add_argument('query', help='Search query')
    search_parser.add_argument(
        '--top-k',
        type=int,
        default=5,
        help='Number of results to return (default: 5)'
    )
    search_parser.set_defaults(func=cmd_search)

    ask_parser = subparsers.add_parser('ask', help='Ask a question and get an AI-generated answer')
    ask_parser.add_argument('question', help='Question to ask')
    ask_parser.add_argument(
        '--top-k',
        type=int,
        default=5,
        help='Number of articles to retrieve (default: 5)'
    )
    ask_parser.add_argument('--session', help='Session ID for multi-turn conversation')
    ask_parser.add_argument('--no-sources', action='store_true', help='Hide source list')
    ask_parser.set_defaults(func=cmd_ask)

    chat_parser = subparsers.add_parser('chat', help='Interactive multi-turn chat')
    chat_parser.add_argument(
        '--top-k',
        type=int,
        default=5,
        help='Number of articles to retrieve (default: 5)'
    )
    chat_parser.add_argument('--no-sources', action='store_true', help='Hide source list')
    chat_parser.set_defaults(func=cmd_chat)

    topics_parser = subparsers.add_parser('topics', help='List topics covered by stored articles')
    topics_parser.set_defaults(func=cmd_topics)

    check_parser = subparsers.add_parser('check', help='Verify Ollama connectivity and model')
    check_parser.set_defaults(func=cmd_check)

    stats_parser = subparsers.add_parser('stats', help='Display system statistics')
    stats_parser.set_defaults(func=cmd_stats)

    clear_parser = subparsers.add_parser('clear', help='Delete all stored articles')
    clear_parser.add_argument('--yes', action='store_true', help='Confirm deletion')
    clear_parser.set_defaults(func=cmd_clear)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
