"""Main entry point for Orbit Bridge."""

import asyncio

import asyncpg  # type: ignore[import-not-found]

from orbit_bridge.classification import KeywordCache
from orbit_bridge.config import Settings, get_settings
from orbit_bridge.ingestion import IngestionOrchestrator
from orbit_bridge.logging import get_logger, setup_logging
from orbit_bridge.query import QueryService
from orbit_bridge.server import BridgeServer
from orbit_bridge.storage import BridgeStorage
from orbit_bridge.transcription import MediaTranscriber


def build_transcriber(settings: Settings) -> MediaTranscriber | None:
    """Voice notes are only transcribed when both credentials are configured."""
    if (
        not settings.transcription_enabled
        or settings.telegram_bot_token is None
        or settings.openai_api_key is None
    ):
        return None
    return MediaTranscriber(
        bot_token=settings.telegram_bot_token.get_secret_value(),
        openai_api_key=settings.openai_api_key.get_secret_value(),
        api_base=settings.telegram_api_base,
        model=settings.transcription_model,
        timeout=settings.telegram_timeout_seconds,
    )


async def main() -> None:
    """Main application entry point."""
    setup_logging()
    log = get_logger("orbit_bridge.main")

    settings = get_settings()
    log.info(
        "starting_orbit_bridge",
        environment=settings.environment,
        port=settings.port,
        transcription_enabled=settings.transcription_enabled,
    )

    try:
        pool = await asyncpg.create_pool(dsn=settings.postgres_dsn)
    except (asyncpg.PostgresError, OSError) as exc:
        log.error("postgres_pool_creation_failed", error=str(exc))
        raise
    log.info("postgres_pool_created", dsn=settings.postgres_dsn.split("@")[-1])

    storage = BridgeStorage()
    await storage.initialize(pool)

    keyword_cache = KeywordCache(
        storage.fetch_keyword_rules,
        ttl_seconds=settings.keyword_cache_ttl_seconds,
    )
    transcriber = build_transcriber(settings)
    orchestrator = IngestionOrchestrator(
        storage=storage,
        keyword_cache=keyword_cache,
        transcriber=transcriber,
    )
    queries = QueryService(storage, keyword_cache)

    webhook_secret = (
        settings.telegram_webhook_secret.get_secret_value()
        if settings.telegram_webhook_secret
        else None
    )
    server = BridgeServer(
        orchestrator=orchestrator,
        queries=queries,
        host=settings.host,
        port=settings.port,
        webhook_secret=webhook_secret,
        cors_allow_origin=settings.cors_allow_origin,
    )

    try:
        await server.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        log.info("shutdown_requested")
    finally:
        await server.stop()
        await orchestrator.drain()
        if transcriber is not None:
            await transcriber.close()
        await pool.close()
        log.info("orbit_bridge_stopped")


def run() -> None:
    """Run the application."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
