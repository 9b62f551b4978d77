"""Main entry point: a console session against the progression engine"""
import logging
import asyncio
import os
from prometheus_client import start_http_server

from hunter_engine.config import (
    validate_config,
    LOG_LEVEL,
    STORE_BACKEND,
    ENABLE_PROMETHEUS,
    METRICS_PORT,
)
from hunter_engine.exceptions import HunterEngineError
from hunter_engine.services import init_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL, logging.INFO)
)

logger = logging.getLogger(__name__)


async def build_store():
    """Create the configured backend; the postgres one also opens the pool and schema"""
    if STORE_BACKEND == "postgres":
        from hunter_engine.db.connection import db
        from hunter_engine.db.postgres_store import PostgresStore

        logger.info("Initializing database connection pool...")
        await db.init_pool()
        store = PostgresStore(db)
        await store.init_schema()
        return store

    from hunter_engine.db.memory_store import InMemoryStore
    logger.info("Using in-memory store (nothing is persisted)")
    return InMemoryStore()


async def main() -> None:
    """Main application entry point"""
    try:
        # Validate configuration
        logger.info("Validating configuration...")
        validate_config()

        if ENABLE_PROMETHEUS:
            start_http_server(METRICS_PORT)
            logger.info(f"Prometheus metrics on :{METRICS_PORT}")

        store = await build_store()
        service = init_container(store).progression_service

        user_id = os.getenv("HUNTER_USER_ID", "local-hunter")
        await service.register_hunter(user_id, os.getenv("HUNTER_USERNAME", "hunter"))
        result = await service.start_day(user_id)
        print(result.message)
        print("Type a command (e.g. 'did 20 push-ups', 'drank 500 ml of water', 'status'). Ctrl+D to quit.")

        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if not line.strip():
                continue

            try:
                result = await service.process_voice_command(user_id, line)
            except HunterEngineError as e:
                print(e.user_message)
                continue
            print(result.message)

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        if STORE_BACKEND == "postgres":
            from hunter_engine.db.connection import db
            logger.info("Closing database connection...")
            await db.close_pool()

        logger.info("Shutdown complete")


def run() -> None:
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
