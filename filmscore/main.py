import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Literal

from dotenv import load_dotenv
load_dotenv()

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .aggregator import run_fetchers
from .config import Settings
from .errors import ConfigurationError, RequestCancelled, UpstreamError
from .log import configure_logging
from .queries import MAX_LIMIT, TopMoviesOptions, get_top_movies
from .services import Services

DISCONNECT_POLL_SECONDS = 0.5

logger = logging.getLogger(__name__)

settings = Settings.from_env()
configure_logging(settings.log_level)

limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = Services.create(settings)
    await services.db.init_db()
    app.state.services = services
    yield
    await services.aclose()


app = FastAPI(lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"detail": "Too many requests. Please try again later."})


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )


class ScoreRequest(BaseModel):
    tmdb_id: int = Field(..., gt=0)


async def _watch_disconnect(request: Request, disconnected: asyncio.Event) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
    disconnected.set()


@app.post("/api/score")
@limiter.limit("30/minute")
async def score(request: Request, body: ScoreRequest, background_tasks: BackgroundTasks):
    services: Services = request.app.state.services
    try:
        movie = await services.tmdb.resolve_movie(body.tmdb_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except UpstreamError as exc:
        status = 404 if exc.status_code == 404 else 502
        raise HTTPException(status_code=status, detail=str(exc))

    disconnected = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, disconnected))
    try:
        result = await run_fetchers(
            movie,
            lambda: services.wikidata.fetch_ids(movie.imdb_id),
            services.fetch_context(),
            cache=services.score_cache,
            hooks=services.hooks,
            signal=disconnected,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except RequestCancelled:
        logger.info("score_abandoned", extra={"imdb_id": movie.imdb_id})
        # Client is gone; nginx's "client closed request".
        return Response(status_code=499)
    finally:
        watcher.cancel()

    background_tasks.add_task(result.deferred)
    return result.payload.model_dump(mode="json")


@app.get("/api/top")
async def top(
    request: Request,
    sort: Literal["score", "divisive"] = "score",
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    min_sources: int | None = Query(None, ge=1, le=9),
    genre: str | None = Query(None, min_length=1, max_length=40),
):
    services: Services = request.app.state.services
    movies = await get_top_movies(
        services.db,
        TopMoviesOptions(sort=sort, limit=limit, min_sources=min_sources, genre=genre),
        cache=services.top_cache,
        kv=services.kv,
    )
    return [movie.model_dump(mode="json") for movie in movies]
