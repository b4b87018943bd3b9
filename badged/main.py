"""Main Litestar application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from litestar import Litestar, Request, Response, get
from litestar.datastructures import State
from litestar.di import Provide
from litestar.exceptions import NotFoundException
from litestar.openapi import OpenAPIConfig
from litestar.response import Redirect

from badged.config.settings import Settings, get_settings
from badged.controller.badge_controller import BadgeController, normalize_path
from badged.repository.base_repository import CacheRepository
from badged.repository.file_repository import FileRepository
from badged.repository.github_repository import GitHubRepository
from badged.repository.redis_repository import RedisRepository
from badged.repository.shields_repository import ShieldsRepository
from badged.service.badge_service import BadgeService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging at the configured level."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


async def get_cache_repository(state: State) -> CacheRepository:
    """Dependency: Get cache repository instance from app state."""
    return state.cache_repo


async def get_github_repository(state: State) -> GitHubRepository:
    """Dependency: Get GitHub repository instance from app state."""
    return state.github_repo


async def get_shields_repository(state: State) -> ShieldsRepository:
    """Dependency: Get shields repository instance from app state."""
    return state.shields_repo


async def get_badge_service(
    state: State,
    cache_repo: CacheRepository,
    github_repo: GitHubRepository,
    shields_repo: ShieldsRepository,
) -> BadgeService:
    """Dependency: Get badge service instance."""
    return BadgeService(state.settings, cache_repo, github_repo, shields_repo)


def not_found_handler(request: Request, exc: NotFoundException) -> Response:
    """Handle 404 errors with custom guidance for badge paths.

    Badge paths are case-insensitive: a path that only matches once
    normalized is redirected to its normalized form.
    """
    path = normalize_path(request.url.path)
    if path != request.url.path:
        query = request.url.query
        return Redirect(path=f"{path}?{query}" if query else path)

    return Response(
        content={
            "status_code": exc.status_code,
            "detail": exc.detail,
            "message": "Endpoint not found. Use /{owner}/{repo}[/total|/{id}|/tags/{tag}] to get a badge.",
            "example": f"{request.url.scheme}://{request.url.netloc}/owner/repo/total",
            "documentation": f"{request.url.scheme}://{request.url.netloc}/docs",
        },
        status_code=exc.status_code,
    )


@get("/", include_in_schema=False)
async def root_handler() -> Redirect:
    """Redirect root to API documentation."""
    return Redirect(path="/docs")


@asynccontextmanager
async def lifespan(app: Litestar):
    """Application lifespan context manager for initializing resources."""
    settings = get_settings()
    logger = logging.getLogger("badged.main")

    # Initialize repositories
    if settings.use_redis:
        repo_target = (
            settings.redis_url or f"{settings.redis_host}:{settings.redis_port}"
        )
        logger.info(f"Using Redis cache at {repo_target}")
        cache_repo = RedisRepository(settings)
        await cache_repo.connect()
    else:
        logger.info(f"Using SQLite cache at {settings.cache_file_path}")
        cache_repo = FileRepository(settings)

    if not settings.github_token:
        logger.warning("No GitHub token configured, using the unauthenticated quota")

    # Store in app state
    app.state.settings = settings
    app.state.cache_repo = cache_repo
    app.state.github_repo = GitHubRepository(settings)
    app.state.shields_repo = ShieldsRepository(settings)

    try:
        yield
    finally:
        # Cleanup
        await app.state.cache_repo.disconnect()
        await app.state.github_repo.close()
        await app.state.shields_repo.close()


def create_app() -> Litestar:
    """Create and configure Litestar application."""
    settings = get_settings()
    configure_logging(settings)
    return Litestar(
        debug=settings.dev,
        route_handlers=[root_handler, BadgeController],
        dependencies={
            "cache_repo": Provide(get_cache_repository),
            "github_repo": Provide(get_github_repository),
            "shields_repo": Provide(get_shields_repository),
            "badge_service": Provide(get_badge_service),
        },
        exception_handlers={
            NotFoundException: not_found_handler,
        },
        openapi_config=OpenAPIConfig(
            title="Badged - GitHub release download badges",
            version="0.1.0",
            path="/docs",
        ),
        lifespan=[lifespan],
    )


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "badged.main:app",
        reload=settings.dev,
        host=settings.server_host,
        port=settings.server_port,
        workers=settings.workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
