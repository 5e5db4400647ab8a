import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .categories import DIFFICULTIES, is_valid_category, is_valid_difficulty
from .config import Settings
from .exceptions import ConfigurationError
from .maintenance import MaintenanceWorker
from .word_service import WordService

logger = logging.getLogger(__name__)

_service: Optional[WordService] = None


def get_word_service() -> WordService:
    """Process-wide word service, built from the environment on first use."""
    global _service
    if _service is None:
        _service = WordService.from_settings(Settings.from_env())
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = app.dependency_overrides.get(get_word_service, get_word_service)()
    await service.initialize_cache()
    worker = MaintenanceWorker(service, Settings.from_env().maintenance_interval_secs)
    worker.start()
    try:
        yield
    finally:
        await worker.stop()
        await service.drain()


app = FastAPI(title="Word Supply API", lifespan=lifespan)


class WordsRequest(BaseModel):
    categories: list[str]
    difficulty: str
    count: int = Field(default=10, ge=1, le=100)


class PreloadRequest(BaseModel):
    categories: list[str]
    difficulties: list[str] | None = None


class SessionRequest(BaseModel):
    categories: list[str]
    difficulty: str


def _validate(categories: list[str], difficulty: Optional[str] = None) -> None:
    if not categories:
        raise HTTPException(status_code=400, detail="at least one category is required")
    unknown = [c for c in categories if not is_valid_category(c)]
    if unknown:
        raise HTTPException(status_code=400, detail=f"unknown categories: {', '.join(unknown)}")
    if difficulty is not None and not is_valid_difficulty(difficulty):
        raise HTTPException(status_code=400, detail=f"unknown difficulty: {difficulty}")


@app.post("/words")
async def get_words(req: WordsRequest, service: WordService = Depends(get_word_service)):
    _validate(req.categories, req.difficulty)
    try:
        words = await service.get_words(req.categories, req.difficulty, req.count)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return {"words": words, "count": len(words)}


@app.post("/cache/initialize")
async def initialize_cache(service: WordService = Depends(get_word_service)):
    return {"ok": await service.initialize_cache()}


@app.post("/cache/preload")
async def preload(req: PreloadRequest, service: WordService = Depends(get_word_service)):
    _validate(req.categories)
    difficulties = req.difficulties or list(DIFFICULTIES)
    for difficulty in difficulties:
        if not is_valid_difficulty(difficulty):
            raise HTTPException(status_code=400, detail=f"unknown difficulty: {difficulty}")
    await service.preload_words(req.categories, difficulties)
    return {"ok": True}


@app.get("/cache/stats")
def cache_stats(service: WordService = Depends(get_word_service)):
    return service.get_cache_statistics()


@app.delete("/cache/expired")
async def clear_expired(service: WordService = Depends(get_word_service)):
    return {"evicted": await service.clear_expired_cache()}


@app.get("/recent/stats")
def recent_stats(service: WordService = Depends(get_word_service)):
    return service.get_recent_words_statistics()


@app.get("/recent/health")
def recent_health(categories: list[str] = Query(...), difficulty: str = Query(...),
                  estimate: int = Query(150, ge=0),
                  service: WordService = Depends(get_word_service)):
    _validate(categories, difficulty)
    return service.health_status(categories, difficulty, estimate)


@app.post("/sessions")
def start_session(req: SessionRequest, service: WordService = Depends(get_word_service)):
    _validate(req.categories, req.difficulty)
    return {"session_id": service.start_session(req.categories, req.difficulty)}


@app.post("/sessions/end")
def end_session(service: WordService = Depends(get_word_service)):
    service.end_session()
    return {"ok": True}


@app.post("/recent/cleanup")
def cleanup_recent(service: WordService = Depends(get_word_service)):
    return {"removed": service.cleanup_recent_words()}


@app.post("/recent/reset")
def reset_recent(service: WordService = Depends(get_word_service)):
    service.reset_recent_history()
    return {"ok": True}
