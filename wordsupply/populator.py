"""
Bulk population of the remote word table from the generator, one batch
per category/difficulty pair.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Sequence

from .categories import AVAILABLE_CATEGORIES, DIFFICULTIES
from .exceptions import ConfigurationError, GeneratorAuthError
from .generator import OpenRouterWordGenerator
from .remote_store import RemoteWordStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

ProgressCallback = Callable[[str, float], None]


async def populate_database(remote: RemoteWordStore, generator: OpenRouterWordGenerator,
                            categories: Optional[Sequence[str]] = None,
                            difficulties: Optional[Sequence[str]] = None,
                            batch_size: int = DEFAULT_BATCH_SIZE,
                            on_progress: Optional[ProgressCallback] = None,
                            pause: float = 1.5) -> Dict[str, int]:
    """
    Generate and insert words for every category x difficulty pair.

    Texts already stored for a pair (case-insensitive) are skipped and
    counted as duplicates. A failing pair counts as one error and the run
    moves on; an invalid generator key aborts the run.

    Returns:
        {'success': inserted, 'errors': failed pairs, 'duplicates': skipped}
    """
    if not generator.is_configured:
        raise ConfigurationError("Word generator API key is not configured.")
    if not remote.is_configured:
        raise ConfigurationError("Word table is not configured.")

    categories = list(categories or AVAILABLE_CATEGORIES)
    difficulties = list(difficulties or DIFFICULTIES)
    totals = {'success': 0, 'errors': 0, 'duplicates': 0}
    total_ops = len(categories) * len(difficulties)
    current = 0

    def report(message: str, progress: float) -> None:
        if on_progress is not None:
            on_progress(message, progress)

    report("Starting word generation...", 0.0)
    for category in categories:
        for difficulty in difficulties:
            current += 1
            report(f"Generating words for {category} - {difficulty}...", current / total_ops * 100)
            try:
                words = await generator.generate([category], difficulty, batch_size)
                if not words:
                    logger.warning(f"No words generated for {category} - {difficulty}")
                    continue
                existing = await asyncio.to_thread(remote.existing_texts, category, difficulty)
                new_words = [w for w in words if w.lower() not in existing]
                duplicates = len(words) - len(new_words)
                if duplicates:
                    logger.info(f"Skipped {duplicates} duplicate words for {category} - {difficulty}")
                    totals['duplicates'] += duplicates
                if not new_words:
                    continue
                inserted = await asyncio.to_thread(remote.insert_words, new_words, category, difficulty)
                totals['success'] += inserted
                logger.info(f"Inserted {inserted} new words for {category} - {difficulty}")
            except GeneratorAuthError:
                raise
            except Exception as e:
                logger.error(f"Error processing {category} - {difficulty}: {e}")
                totals['errors'] += 1
            if pause > 0:
                await asyncio.sleep(pause)

    report("Done!", 100.0)
    logger.info(
        f"Population finished: {totals['success']} inserted, "
        f"{totals['duplicates']} duplicates, {totals['errors']} errors"
    )
    return totals
