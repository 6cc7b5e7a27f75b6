"""FastAPI application entry point for the video course RAG bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.exceptions.RAGErrors import RAGError
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.reward.RewardNotifierManager import RewardNotifierManager
from shared.stores.ChunkStoreManager import ChunkStoreManager
from shared.stores.sql.SqlDatabase import SqlDatabase
from shared.stores.sql.ChatStoreSql import ChatStoreSql
from shared.rag.TranscriptChunker import TranscriptChunker
from shared.rag.EmbeddingGenerator import EmbeddingGenerator
from shared.rag.Retriever import Retriever
from shared.rag.AnswerGenerator import AnswerGenerator
from shared.rag.SessionManager import SessionManager
from services.ingestion.IngestionService import IngestionService
from server.core.ChatService import ChatService
from server.dependencies.auth import verify_api_key
from server.models.responses import HealthResponse
from server.routers.IngestRouter import router as ingest_router
from server.routers.ChatRouter import router as chat_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

ERROR_STATUS_CODES: dict[str, int] = {
    "validation_error": 400,
    "authorization_error": 403,
    "not_found": 404,
    "rate_limited": 429,
    "provider_error": 502,
    "partial_ingestion": 502,
    "generation_unavailable": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    helper_config = HelperConfig(logger=logging)
    app.state.logging = logging
    app.state.helper_config = helper_config

    database = SqlDatabase(helper_config=helper_config)
    database.create_all()

    embed_client = EmbedClientManager(helper_config=helper_config).get_client()
    llm_client = LLMClientManager(helper_config=helper_config).get_client()
    reward_notifier = RewardNotifierManager(helper_config=helper_config).get_client()
    chunk_store = ChunkStoreManager(helper_config=helper_config, database=database).get_store()

    http_clients: list[ClientInterface] = [embed_client, llm_client]
    if reward_notifier is not None:
        http_clients.append(reward_notifier)

    logging.info("Booting all clients...")
    for client in http_clients:
        await client.boot()
    await chunk_store.boot()
    logging.info("All clients booted successfully.")

    await check_connections(embed_client, llm_client)
    vector_size, distance = await embed_client.do_fetch_embedding_vector_size()
    logging.info("Embedding model '%s' produces %d-dim vectors (%s).", embed_client.get_model_name(), vector_size, distance)
    await chunk_store.prepare(vector_size)

    retry_policy = RetryPolicy.from_config(helper_config)
    embedding_generator = EmbeddingGenerator(
        helper_config=helper_config,
        embed_client=embed_client,
        retry_policy=retry_policy,
    )
    app.state.ingestion_service = IngestionService(
        helper_config=helper_config,
        chunker=TranscriptChunker(helper_config=helper_config),
        embedding_generator=embedding_generator,
        chunk_store=chunk_store,
    )
    app.state.chat_service = ChatService(
        helper_config=helper_config,
        retriever=Retriever(helper_config=helper_config, embedding_generator=embedding_generator, chunk_store=chunk_store),
        answer_generator=AnswerGenerator(helper_config=helper_config, llm_client=llm_client, retry_policy=retry_policy),
        session_manager=SessionManager(helper_config=helper_config, chat_store=ChatStoreSql(helper_config, database)),
        reward_notifier=reward_notifier,
    )

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    await app.state.chat_service.drain_background_tasks()
    for client in http_clients:
        await client.close()
    await chunk_store.close()
    database.dispose()
    logging.info("All clients closed.")


app = FastAPI(
    title="video_rag_bridge",
    description=(
        "Retrieval-augmented Q&A over a creator's course videos. "
        "Transcripts are chunked, embedded and stored per tenant via POST /videos/{video_id}/ingest; "
        "students ask questions via POST /chat and receive grounded answers with timestamp citations."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router)
app.include_router(chat_router)


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Map core errors to a status code and a body without internals."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    if status_code >= 500:
        logging.error("%s %s failed with %s: %s", request.method, request.url.path, exc.kind, exc.message)
    else:
        logging.info("%s %s rejected with %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    message = "Invalid request: " + ", ".join(fields) if fields else "Invalid request."
    return JSONResponse(status_code=400, content={"error": {"kind": "validation_error", "message": message}})


@app.get("/health", dependencies=[Depends(verify_api_key)])
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version=app_version)


async def check_connections(embed_client: EmbedClientInterface, llm_client: LLMClientInterface) -> None:
    """Check connectivity to the embedding and LLM backends on startup.

    Both are fatal: neither ingestion nor questions work without them.

    Raises:
        RuntimeError: If a backend is not reachable.
    """
    for name, client in (("Embed", embed_client), ("LLM", llm_client)):
        result: httpx.Response = await client.do_healthcheck()
        if not result.is_success:
            raise RuntimeError(
                f"{name} client '{client.__class__.__name__}' is not reachable (status {result.status_code})."
            )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting video_rag_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
