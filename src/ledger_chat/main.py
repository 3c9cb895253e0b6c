"""Ledger Chat FastAPI application."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import logfire
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from ledger_chat import __version__
from ledger_chat.api import dependencies
from ledger_chat.api.endpoints import chat, core
from ledger_chat.core.base import ApplicationError
from ledger_chat.core.config import settings
from ledger_chat.core.handlers import (
    application_error_handler,
    request_validation_handler,
    unhandled_error_handler,
)
from ledger_chat.core.logging import clear_log_context, get_logger, setup_logging
from ledger_chat.infrastructure.embeddings import create_embedding_service
from ledger_chat.infrastructure.generation import AnthropicGenerationService
from ledger_chat.infrastructure.neo4j import Neo4jRecordSource, create_neo4j_driver
from ledger_chat.services import (
    ChatOrchestrator,
    ConversationStore,
    VectorIndexManager,
)

logfire.configure(
    service_name="ledger-chat",
    token=settings.logfire_token.get_secret_value() if settings.logfire_token else None,
    send_to_logfire="if-token-present",
)
setup_logging(logging.getLevelNamesMapping()[settings.log_level.upper()])
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Wire the record source, model gateways and chat services for the app lifetime."""
    logger.info("Starting Ledger Chat...")

    driver_resource = create_neo4j_driver()
    try:
        neo4j_driver = await anext(driver_resource)

        embedding_service = create_embedding_service()
        logger.info(
            f"Using embedding model '{embedding_service.model}' "
            f"with {embedding_service.get_model_dimensions()} dimensions"
        )
        generation_service = AnthropicGenerationService()

        index_manager = VectorIndexManager(
            record_source=Neo4jRecordSource(neo4j_driver),
            embeddings=embedding_service,
        )
        dependencies.embedding_service = embedding_service
        dependencies.generation_service = generation_service
        dependencies.chat_orchestrator = ChatOrchestrator(
            index_manager=index_manager,
            conversations=ConversationStore(),
            generator=generation_service,
        )

        logger.info("Ledger Chat started successfully")
        yield

    except Exception as e:
        logger.error(f"Failed to start Ledger Chat: {e}", exc_info=True)
        raise

    finally:
        logger.info("Shutting down Ledger Chat...")
        dependencies.chat_orchestrator = None
        dependencies.embedding_service = None
        dependencies.generation_service = None
        await driver_resource.aclose()
        logger.info("Ledger Chat shutdown complete")


app = FastAPI(
    title="Ledger Chat API",
    description="Questions and answers over a small business's products, sales and debts",
    version=__version__,
    lifespan=lifespan,
)

logfire.instrument_fastapi(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def reset_log_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    clear_log_context()
    return await call_next(request)


app.add_exception_handler(ApplicationError, application_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
app.include_router(core.router)


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "ledger_chat.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run()
