"""
FastAPI application factory.
"""

import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.database import init_db, close_db
from .core.flags import FeatureFlags, get_flags
from .core.redis import close_redis
from .core.storage import StorageBackend, get_storage
from .api.router import router

logger = logging.getLogger(__name__)


def build_http_client() -> httpx.AsyncClient:
    """One pooled client shared by every vendor adapter."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        follow_redirects=True,
    )


def build_pipeline(
    client: httpx.AsyncClient,
    storage: StorageBackend,
    settings: Settings,
    flags: FeatureFlags,
):
    """Wire vendor clients into the orchestrator and the job status service."""
    from .orchestrator.jobs import JobStatusService
    from .orchestrator.orchestrator import ReplyOrchestrator
    from .services.lipsync import build_lipsync_client
    from .services.llm import ReplyGenerator
    from .services.poller import JobPoller
    from .services.speech import SpeechSynthesizer

    generator = ReplyGenerator(
        client,
        api_key=settings.novita_key,
        base_url=settings.novita_openai_base,
        model=settings.novita_llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    synthesizer = SpeechSynthesizer(
        client,
        api_key=settings.novita_key,
        url=settings.novita_speech_url,
        default_voice=settings.novita_speech_default_voice,
    )
    lipsync = build_lipsync_client(flags.lipsync_vendor, client, settings)
    poller = JobPoller(
        lipsync,
        interval=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        max_transport_failures=settings.poll_max_transport_failures,
    )

    orchestrator = ReplyOrchestrator(
        generator=generator,
        synthesizer=synthesizer,
        lipsync=lipsync,
        poller=poller,
        storage=storage,
        video_bucket=settings.video_bucket,
        max_chars=settings.max_assistant_chars,
        words_per_segment=settings.words_per_segment,
        skip_short_chars=settings.skip_short_reply_chars,
        clean_mode_default=settings.clean_mode_default,
        lipsync_enabled=flags.use_lipsync,
        reply_mode=flags.reply_mode,
    )
    job_service = JobStatusService(poller, storage, client, video_bucket=settings.video_bucket)
    return orchestrator, job_service


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="BaseSpeak",
        description="Talking-avatar reply pipeline",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting BaseSpeak (env=%s)", settings.env)

        # Create database tables
        await init_db()

        flags = get_flags()
        app.state.http_client = build_http_client()
        app.state.storage = get_storage()
        app.state.orchestrator, app.state.job_service = build_pipeline(
            app.state.http_client, app.state.storage, settings, flags,
        )

        # Log feature flag state
        logger.info(
            "Flags: auth=%s s3=%s redis=%s lipsync=%s vendor=%s mode=%s",
            flags.use_auth, flags.use_s3, flags.use_redis,
            flags.use_lipsync, flags.lipsync_vendor, flags.reply_mode,
        )
        logger.info(
            "Vendors: llm=%s speech=%s lipsync=%s",
            app.state.orchestrator.generator.configured,
            app.state.orchestrator.synthesizer.configured,
            app.state.orchestrator.lipsync.configured,
        )
        logger.info("BaseSpeak is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        client = getattr(app.state, "http_client", None)
        if client is not None and not client.is_closed:
            await client.aclose()
        await close_db()
        await close_redis()
        logger.info("BaseSpeak shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
