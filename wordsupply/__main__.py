"""Admin CLI: python -m wordsupply <command> [options]"""

import argparse
import asyncio
import json
import sys

from .categories import AVAILABLE_CATEGORIES, DIFFICULTIES
from .config import Settings
from .exceptions import ConfigurationError
from .monitoring import configure_logging
from .populator import populate_database
from .remote_store import DynamoDBWordStore
from .word_service import WordService


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='wordsupply', description='Word supply admin tools')
    parser.add_argument('--log-level', default=None, help='Override LOG_LEVEL')
    sub = parser.add_subparsers(dest='command', required=True)

    words = sub.add_parser('words', help='Draw words like the game would')
    words.add_argument('categories', nargs='+', choices=list(AVAILABLE_CATEGORIES))
    words.add_argument('--difficulty', default='medium', choices=DIFFICULTIES)
    words.add_argument('--count', type=int, default=10)

    sub.add_parser('stats', help='Show cache and recent-word statistics')

    preload = sub.add_parser('preload', help='Warm the local cache from the word table')
    preload.add_argument('categories', nargs='*', help='Defaults to every category')
    preload.add_argument('--difficulty', action='append', choices=DIFFICULTIES,
                         help='Repeatable; defaults to every difficulty')

    populate = sub.add_parser('populate', help='Fill the word table from the generator')
    populate.add_argument('--category', action='append', choices=list(AVAILABLE_CATEGORIES))
    populate.add_argument('--difficulty', action='append', choices=DIFFICULTIES)
    populate.add_argument('--batch-size', type=int, default=50)

    sub.add_parser('setup-table', help='Create the DynamoDB words table')
    sub.add_parser('cleanup', help='Evict expired cache entries and recent words')
    sub.add_parser('reset-usage', help='Zero every usage counter in the word table')
    return parser.parse_args(argv)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _run(args, settings: Settings) -> int:
    if args.command == 'setup-table':
        store = DynamoDBWordStore.from_settings(settings)
        if not store.is_configured:
            print("WORDS_TABLE is not set")
            return 1
        created = store.create_table()
        print(f"Created table: {store.table_name}" if created else f"Table already exists: {store.table_name}")
        return 0

    service = WordService.from_settings(settings)
    await service.initialize_cache()

    if args.command == 'words':
        words = await service.get_words(args.categories, args.difficulty, args.count)
        await service.drain()
        for word in words:
            print(word)
    elif args.command == 'stats':
        _print_json({
            'cache': service.get_cache_statistics(),
            'recent_words': service.get_recent_words_statistics(),
        })
    elif args.command == 'preload':
        categories = args.categories or list(AVAILABLE_CATEGORIES)
        unknown = [c for c in categories if c not in AVAILABLE_CATEGORIES]
        if unknown:
            print(f"Unknown categories: {', '.join(unknown)}", file=sys.stderr)
            return 1
        await service.preload_words(categories, args.difficulty or DIFFICULTIES)
        _print_json(service.get_cache_statistics())
    elif args.command == 'populate':
        def progress(message: str, percent: float) -> None:
            print(f"[{percent:5.1f}%] {message}")

        result = await populate_database(
            service.remote, service.generator,
            categories=args.category, difficulties=args.difficulty,
            batch_size=args.batch_size, on_progress=progress,
        )
        _print_json(result)
    elif args.command == 'cleanup':
        evicted = await service.clear_expired_cache()
        removed = service.cleanup_recent_words()
        print(f"Evicted {evicted} cached words, removed {removed} expired recent words")
    elif args.command == 'reset-usage':
        result = await service.reset_usage_counters()
        print(result['message'])
        return 0 if result['success'] else 1
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(_run(args, Settings.from_env()))
    except ConfigurationError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
