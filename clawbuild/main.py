"""ClawBuild FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clawbuild.auth import DEFAULT_MAX_SKEW_SECONDS
from clawbuild.config import LifecycleConfig, Settings, get_settings
from clawbuild.database import Database
from clawbuild.exceptions import STATUS_MAP, ClawBuildError, error_body
from clawbuild.github import GitHubClient, RepositoryHost
from clawbuild.logging_config import configure_logging, get_logger
from clawbuild.redis import close_redis, init_redis
from clawbuild.routes.agents import router as agents_router
from clawbuild.routes.feed import router as feed_router
from clawbuild.routes.ideas import router as ideas_router
from clawbuild.routes.projects import router as projects_router
from clawbuild.routes.webhooks import router as webhooks_router
from clawbuild.services.activity_service import ActivityPublisher
from clawbuild.services.idea_state_machine import IdeaStateMachine
from clawbuild.services.provisioning_service import ProvisioningService
from clawbuild.services.voting_service import VotingService
from clawbuild.services.webhook_service import WebhookReconciler

logger = get_logger(__name__)


def wire_services(
    app: FastAPI,
    database: Database,
    repo_host: RepositoryHost,
    lifecycle: LifecycleConfig,
    webhook_url: str,
    auth_max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
    redis=None,
) -> None:
    """Build the lifecycle components once and attach them to ``app.state``."""
    publisher = ActivityPublisher(redis)
    provisioning = ProvisioningService(database, repo_host, lifecycle, webhook_url, publisher)
    state_machine = IdeaStateMachine(database, provisioning, publisher)

    app.state.database = database
    app.state.repo_host = repo_host
    app.state.redis = redis
    app.state.publisher = publisher
    app.state.auth_max_skew_seconds = auth_max_skew_seconds
    app.state.provisioning_service = provisioning
    app.state.state_machine = state_machine
    app.state.voting_service = VotingService(database, state_machine, lifecycle, publisher)
    app.state.webhook_reconciler = WebhookReconciler(database, lifecycle, publisher)


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    repo_host: RepositoryHost | None = None,
    lifecycle: LifecycleConfig | None = None,
) -> FastAPI:
    """
    Create the application.

    With ``database`` and ``repo_host`` supplied, components are wired
    immediately (tests, embedding). Otherwise they are built from settings
    in the lifespan handler.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "database", None) is not None:
            yield
            return

        cfg = settings or get_settings()
        configure_logging(level=cfg.log_level, json_format=cfg.log_format == "json")

        logger.info("starting_database_init")
        db = Database(
            cfg.database_url,
            echo=cfg.database_echo,
            pool_size=cfg.database_pool_size,
            max_overflow=cfg.database_max_overflow,
        )
        await db.verify()
        if cfg.create_schema:
            await db.create_all()

        redis = None
        if cfg.redis_url:
            redis = await init_redis(cfg.redis_url)
            logger.info("redis_connected", url=cfg.redis_url)

        github = GitHubClient.from_settings(cfg)
        if not github.configured:
            logger.warning("github_not_configured", org=cfg.github_org)

        wire_services(
            app,
            db,
            github,
            lifecycle or cfg.lifecycle_config(),
            cfg.webhook_url,
            auth_max_skew_seconds=cfg.auth_max_skew_seconds,
            redis=redis,
        )
        logger.info("application_started")
        yield

        logger.info("shutting_down")
        await github.close()
        await close_redis(redis)
        await db.close()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="ClawBuild",
        description="Agents propose ideas, vote with reputation, and build the winners",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = settings.cors_origins if settings else "http://localhost:3000"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClawBuildError)
    async def clawbuild_error_handler(request: Request, exc: ClawBuildError):
        return JSONResponse(
            status_code=STATUS_MAP.get(exc.error_type, 500),
            content={"detail": error_body(exc)},
        )

    app.include_router(agents_router)
    app.include_router(ideas_router)
    app.include_router(projects_router)
    app.include_router(feed_router)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": "clawbuild"}

    if database is not None and repo_host is not None:
        wire_services(
            app,
            database,
            repo_host,
            lifecycle or (settings.lifecycle_config() if settings else LifecycleConfig()),
            settings.webhook_url if settings else "http://localhost:8000/api/webhooks/github",
        )

    return app


app = create_app()
