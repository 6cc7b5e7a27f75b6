"""Ingestion runner entry point.

One-shot ingestion of a single transcribed video, for the external video
processing pipeline or manual backfills.

Usage:
    python -m services.ingestion.ingest_runner --video-id VIDEO --tenant-id TENANT transcript.json

The transcript file holds {"text": ..., "segments": [{"index", "start", "end", "text"}, ...],
"language": ..., "duration": ...}.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError as ModelValidationError

from services.ingestion.IngestionService import IngestionService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.exceptions.RAGErrors import RAGError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.logging.logging_setup import setup_logging
from shared.models.transcript import Transcript
from shared.rag.EmbeddingGenerator import EmbeddingGenerator
from shared.rag.TranscriptChunker import TranscriptChunker
from shared.stores.ChunkStoreManager import ChunkStoreManager
from shared.stores.sql.SqlDatabase import SqlDatabase


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest the transcript of one video into the chunk store.")
    parser.add_argument("transcript", type=Path, help="Path to the transcript JSON file.")
    parser.add_argument("--video-id", required=True, help="Id of the processed video.")
    parser.add_argument("--tenant-id", required=True, help="Id of the creator owning the video.")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Run one ingestion and return the process exit code."""
    args = parse_args(argv)
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    try:
        transcript = Transcript.model_validate_json(args.transcript.read_text(encoding="utf-8"))
    except (OSError, ModelValidationError) as e:
        logger.error("Could not read transcript %s: %s", args.transcript, e)
        return 2

    database = SqlDatabase(helper_config=config)
    embed_client = EmbedClientManager(helper_config=config).get_client()
    chunk_store = ChunkStoreManager(helper_config=config, database=database).get_store()

    try:
        # embed client is required, without it there is nothing to store
        try:
            await embed_client.boot()
            await embed_client.do_healthcheck()
        except RAGError as e:
            logger.error("Error booting Embed client %s: %s. Aborting.", embed_client.get_engine_name(), e)
            return 1

        await chunk_store.boot()
        vector_size, _ = await embed_client.do_fetch_embedding_vector_size()
        await chunk_store.prepare(vector_size)

        service = IngestionService(
            helper_config=config,
            chunker=TranscriptChunker(helper_config=config),
            embedding_generator=EmbeddingGenerator(
                helper_config=config,
                embed_client=embed_client,
                retry_policy=RetryPolicy.from_config(config),
            ),
            chunk_store=chunk_store,
        )
        try:
            result = await service.ingest_video(video_id=args.video_id, tenant_id=args.tenant_id, transcript=transcript)
        except RAGError as e:
            logger.error("Ingestion of video %s failed (%s): %s", args.video_id, e.kind, e.message)
            return 1

        logger.info(
            "Ingestion of video %s finished: %d chunks, RAG available: %s",
            result.video_id, result.chunk_count, result.rag_available, color="green",
        )
        return 0
    finally:
        await embed_client.close()
        await chunk_store.close()
        database.dispose()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
