import asyncio
import json
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy import Float, delete, func, select

from shared.exceptions.RAGErrors import AuthorizationError, NotFoundError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_positive_int, require_tenant_id
from shared.models.chunk import Chunk, ScoredChunk, TextChunk
from shared.models.transcript import TranscriptSegment
from shared.stores.ChunkStoreInterface import ChunkStoreInterface
from shared.stores.sql.SqlDatabase import SqlDatabase
from shared.stores.sql.models import ChunkRow, VideoRow


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity between two vectors."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _as_utc(value: datetime | None) -> datetime:
    # SQLite hands back naive datetimes
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChunkStoreSql(ChunkStoreInterface):
    """Chunk store on the relational database.

    On Postgres vectors live in a pgvector column and the database ranks them
    by cosine distance. On SQLite they are stored as JSON and ranked in Python.
    All database work runs in a worker thread so the event loop stays free.
    """

    def __init__(self, helper_config: HelperConfig, database: SqlDatabase):
        self.logging = helper_config.get_logger()
        self.database = database

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def prepare(self, vector_size: int) -> None:
        await asyncio.to_thread(self.database.create_all)
        self.logging.info(
            "SQL chunk store ready on %s (vector size %d, %s ranking).",
            self.database.dialect_name, vector_size, "pgvector" if self._uses_pgvector() else "in-process",
        )

    ##########################################
    ################ WRITES ##################
    ##########################################

    async def insert_chunks(
        self,
        video_id: str,
        tenant_id: str,
        chunks: list[TextChunk],
        vectors: list[list[float]],
        embedding_model: str | None = None,
        video_created_at: datetime | None = None,
    ) -> int:
        tenant_id = require_tenant_id(tenant_id)
        if len(chunks) != len(vectors):
            raise ValidationError(f"Got {len(chunks)} chunks but {len(vectors)} vectors for video '{video_id}'.")

        removed = await asyncio.to_thread(
            self._replace_chunks, video_id, tenant_id, chunks, vectors, embedding_model, video_created_at
        )
        self.logging.info(
            "Stored %d chunks for video %s (tenant %s), replaced %d.", len(chunks), video_id, tenant_id, removed
        )
        return len(chunks)

    async def delete_chunks_for_video(self, video_id: str) -> int:
        removed = await asyncio.to_thread(self._delete_chunks, video_id)
        self.logging.info("Deleted %d chunks for video %s.", removed, video_id)
        return removed

    async def delete_video(self, video_id: str, tenant_id: str) -> int:
        tenant_id = require_tenant_id(tenant_id)
        removed = await asyncio.to_thread(self._delete_video, video_id, tenant_id)
        self.logging.info("Deleted video %s (tenant %s) with %d chunks.", video_id, tenant_id, removed)
        return removed

    ##########################################
    ################ READS ###################
    ##########################################

    async def search_chunks(
        self,
        query_vector: list[float],
        tenant_id: str,
        top_k: int,
        min_similarity: float,
        video_ids: list[str] | None = None,
    ) -> list[ScoredChunk]:
        tenant_id = require_tenant_id(tenant_id)
        top_k = require_positive_int(top_k, "top_k")

        if self._uses_pgvector():
            return await asyncio.to_thread(
                self._search_pgvector, query_vector, tenant_id, top_k, min_similarity, video_ids
            )
        return await asyncio.to_thread(self._search_in_process, query_vector, tenant_id, top_k, min_similarity, video_ids)

    async def count_chunks_for_video(self, video_id: str) -> int:
        return await asyncio.to_thread(self._count_chunks, video_id)

    async def get_video_tenant(self, video_id: str) -> str | None:
        return await asyncio.to_thread(self._video_tenant, video_id)

    ##########################################
    ############ DATABASE (SYNC) #############
    ##########################################

    def _replace_chunks(
        self,
        video_id: str,
        tenant_id: str,
        chunks: list[TextChunk],
        vectors: list[list[float]],
        embedding_model: str | None,
        video_created_at: datetime | None,
    ) -> int:
        with self.database.session() as db:
            video = db.get(VideoRow, video_id)
            if video is None:
                video = VideoRow(
                    video_id=video_id,
                    tenant_id=tenant_id,
                    created_at=video_created_at or datetime.now(timezone.utc),
                )
                db.add(video)
                db.flush()
            elif video.tenant_id != tenant_id:
                self.logging.warning(
                    "Tenant %s tried to write chunks for video %s owned by another tenant.", tenant_id, video_id
                )
                raise AuthorizationError(f"Video '{video_id}' belongs to another tenant.")

            removed = db.execute(delete(ChunkRow).where(ChunkRow.video_id == video_id)).rowcount
            for chunk, vector in zip(chunks, vectors):
                db.add(
                    ChunkRow(
                        id=str(uuid.uuid4()),
                        video_id=video_id,
                        tenant_id=video.tenant_id,
                        chunk_index=chunk.chunk_index,
                        text=chunk.text,
                        start_timestamp=chunk.start_timestamp,
                        end_timestamp=chunk.end_timestamp,
                        word_count=chunk.word_count,
                        embedding=vector,
                        embedding_model=embedding_model,
                        topic_tags=json.dumps(chunk.topic_tags),
                        segments=json.dumps([s.model_dump() for s in chunk.segments]),
                    )
                )
        return removed or 0

    def _delete_chunks(self, video_id: str) -> int:
        with self.database.session() as db:
            removed = db.execute(delete(ChunkRow).where(ChunkRow.video_id == video_id)).rowcount
        return removed or 0

    def _delete_video(self, video_id: str, tenant_id: str) -> int:
        with self.database.session() as db:
            video = db.get(VideoRow, video_id)
            if video is None:
                raise NotFoundError(f"Video '{video_id}' not found.")
            if video.tenant_id != tenant_id:
                raise AuthorizationError(f"Video '{video_id}' belongs to another tenant.")
            removed = db.execute(delete(ChunkRow).where(ChunkRow.video_id == video_id)).rowcount
            db.delete(video)
        return removed or 0

    def _search_pgvector(
        self,
        query_vector: list[float],
        tenant_id: str,
        top_k: int,
        min_similarity: float,
        video_ids: list[str] | None,
    ) -> list[ScoredChunk]:
        # <=> is pgvector's cosine distance, similarity = 1 - distance
        distance = ChunkRow.embedding.op("<=>", return_type=Float)(query_vector)
        similarity = (1 - distance).label("similarity")
        stmt = (
            select(ChunkRow, VideoRow.created_at, similarity)
            .join(VideoRow, ChunkRow.video_id == VideoRow.video_id)
            .where(
                ChunkRow.tenant_id == tenant_id,
                func.vector_dims(ChunkRow.embedding) == len(query_vector),
                1 - distance >= min_similarity,
            )
        )
        if video_ids:
            stmt = stmt.where(ChunkRow.video_id.in_(video_ids))
        stmt = stmt.order_by(distance, ChunkRow.chunk_index, VideoRow.created_at, ChunkRow.video_id).limit(top_k)

        with self.database.session() as db:
            rows = db.execute(stmt).all()
            return [
                ScoredChunk(chunk=self._row_to_chunk(row, _as_utc(created_at)), similarity=float(score))
                for row, created_at, score in rows
            ]

    def _search_in_process(
        self,
        query_vector: list[float],
        tenant_id: str,
        top_k: int,
        min_similarity: float,
        video_ids: list[str] | None,
    ) -> list[ScoredChunk]:
        with self.database.session() as db:
            stmt = (
                select(ChunkRow, VideoRow.created_at)
                .join(VideoRow, ChunkRow.video_id == VideoRow.video_id)
                .where(ChunkRow.tenant_id == tenant_id)
            )
            if video_ids:
                stmt = stmt.where(ChunkRow.video_id.in_(video_ids))
            rows = db.execute(stmt).all()

        scored: list[tuple[float, ChunkRow, datetime]] = []
        skipped = 0
        for row, video_created_at in rows:
            vector = row.embedding
            if not vector or len(vector) != len(query_vector):
                skipped += 1
                continue
            similarity = cosine_similarity(query_vector, vector)
            if similarity >= min_similarity:
                scored.append((similarity, row, _as_utc(video_created_at)))

        if skipped:
            self.logging.warning(
                "Skipped %d chunks of tenant %s with missing or mismatched embeddings.", skipped, tenant_id
            )

        scored.sort(key=lambda item: (-item[0], item[1].chunk_index, item[2], item[1].video_id))
        return [
            ScoredChunk(chunk=self._row_to_chunk(row, created_at), similarity=similarity)
            for similarity, row, created_at in scored[:top_k]
        ]

    def _count_chunks(self, video_id: str) -> int:
        with self.database.session() as db:
            return db.execute(select(func.count()).select_from(ChunkRow).where(ChunkRow.video_id == video_id)).scalar_one()

    def _video_tenant(self, video_id: str) -> str | None:
        with self.database.session() as db:
            video = db.get(VideoRow, video_id)
            return video.tenant_id if video else None

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _uses_pgvector(self) -> bool:
        return self.database.dialect_name == "postgresql"

    def _row_to_chunk(self, row: ChunkRow, video_created_at: datetime) -> Chunk:
        return Chunk(
            id=row.id,
            video_id=row.video_id,
            tenant_id=row.tenant_id,
            chunk_index=row.chunk_index,
            text=row.text,
            start_timestamp=row.start_timestamp,
            end_timestamp=row.end_timestamp,
            word_count=row.word_count,
            segments=[TranscriptSegment(**s) for s in json.loads(row.segments or "[]")],
            topic_tags=json.loads(row.topic_tags or "[]"),
            embedding_model=row.embedding_model,
            video_created_at=video_created_at,
        )
