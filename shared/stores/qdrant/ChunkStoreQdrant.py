import uuid
from datetime import datetime, timezone

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.RAGErrors import AuthorizationError, NotFoundError, ProviderError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_positive_int, require_tenant_id
from shared.models.chunk import Chunk, ScoredChunk, TextChunk
from shared.models.config import EnvConfig
from shared.stores.ChunkStoreInterface import ChunkStoreInterface


class ChunkStoreQdrant(ClientInterface, ChunkStoreInterface):
    """Chunk store on a Qdrant collection, spoken to over its REST API.

    Every point carries tenant_id in its payload and every search sends a
    tenant_id must-filter. Qdrant has no multi-request transactions, so a
    failed upsert is compensated by deleting the video's points.
    """

    def __init__(self, helper_config: HelperConfig, database=None):
        super().__init__(helper_config=helper_config)
        self._collection_name = self.settings["COLLECTION"]
        self._distance = self.settings["DISTANCE"]

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "store"

    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="video_chunks"),
            EnvConfig(env_key="DISTANCE", val_type="string", default="Cosine"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        api_key = self.settings["API_KEY"]
        return {"api-key": api_key} if api_key else {}

    ################ ENDPOINTS ##################
    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_payload_index(self) -> str:
        return f"/collections/{self._collection_name}/index"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_scroll(self) -> str:
        return f"/collections/{self._collection_name}/points/scroll"

    def _get_endpoint_count(self) -> str:
        return f"/collections/{self._collection_name}/points/count"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def _match(self, key: str, value: str) -> dict:
        return {"key": key, "match": {"value": value}}

    def get_search_payload(
        self,
        query_vector: list[float],
        tenant_id: str,
        limit: int,
        min_similarity: float,
        video_ids: list[str] | None = None,
    ) -> dict:
        must = [self._match("tenant_id", tenant_id)]
        if video_ids:
            must.append({"key": "video_id", "match": {"any": list(video_ids)}})
        return {
            "vector": query_vector,
            "filter": {"must": must},
            "limit": limit,
            "score_threshold": min_similarity,
            "with_payload": True,
            "with_vector": False,
        }

    def get_point(
        self,
        video_id: str,
        tenant_id: str,
        chunk: TextChunk,
        vector: list[float],
        embedding_model: str | None,
        video_created_at: datetime,
    ) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "vector": vector,
            "payload": {
                "video_id": video_id,
                "tenant_id": tenant_id,
                "chunk_index": chunk.chunk_index,
                "text": chunk.text,
                "start_timestamp": chunk.start_timestamp,
                "end_timestamp": chunk.end_timestamp,
                "word_count": chunk.word_count,
                "segments": [s.model_dump() for s in chunk.segments],
                "topic_tags": list(chunk.topic_tags),
                "embedding_model": embedding_model,
                "video_created_at": video_created_at.isoformat(),
            },
        }

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def prepare(self, vector_size: int) -> None:
        data = await self.do_request_json(method="GET", endpoint=self._get_endpoint_check_collection_existence())
        if data.get("result", {}).get("exists"):
            self.logging.info("Qdrant collection '%s' exists.", self._collection_name)
            return
        await self.do_request(
            method="PUT",
            endpoint=self._get_endpoint_collection(),
            json={"vectors": {"size": vector_size, "distance": self._distance}},
            raise_on_error=True,
        )
        for field in ("tenant_id", "video_id"):
            await self.do_request(
                method="PUT",
                endpoint=self._get_endpoint_payload_index(),
                json={"field_name": field, "field_schema": "keyword"},
                raise_on_error=True,
            )
        self.logging.info("Created Qdrant collection '%s' (size %d, %s).", self._collection_name, vector_size, self._distance)

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

        registration = await self._get_video_registration(video_id)
        if registration is not None:
            owner, created_at = registration
            if owner != tenant_id:
                raise AuthorizationError(f"Video '{video_id}' belongs to another tenant.")
        else:
            created_at = video_created_at or datetime.now(timezone.utc)

        points = [
            self.get_point(video_id, tenant_id, chunk, vector, embedding_model, created_at)
            for chunk, vector in zip(chunks, vectors)
        ]
        await self.delete_chunks_for_video(video_id)
        if not points:
            return 0
        try:
            await self.do_request(
                method="PUT",
                endpoint=self._get_endpoint_points(),
                params={"wait": "true"},
                json={"points": points},
                raise_on_error=True,
            )
        except ProviderError:
            self.logging.error("Upsert of %d points for video %s failed, removing partial write.", len(points), video_id)
            await self.delete_chunks_for_video(video_id)
            raise
        self.logging.info("Stored %d chunks for video %s (tenant %s) in Qdrant.", len(points), video_id, tenant_id)
        return len(points)

    async def delete_chunks_for_video(self, video_id: str) -> int:
        count = await self.count_chunks_for_video(video_id)
        if count:
            await self.do_request(
                method="POST",
                endpoint=self._get_endpoint_delete_points(),
                params={"wait": "true"},
                json={"filter": {"must": [self._match("video_id", video_id)]}},
                raise_on_error=True,
            )
        return count

    async def delete_video(self, video_id: str, tenant_id: str) -> int:
        tenant_id = require_tenant_id(tenant_id)
        registration = await self._get_video_registration(video_id)
        if registration is None:
            raise NotFoundError(f"Video '{video_id}' not found.")
        if registration[0] != tenant_id:
            raise AuthorizationError(f"Video '{video_id}' belongs to another tenant.")
        return await self.delete_chunks_for_video(video_id)

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
        # over-fetch so ties at the cut are broken by our ordering, not Qdrant's
        payload = self.get_search_payload(query_vector, tenant_id, top_k * 2, min_similarity, video_ids)
        data = await self.do_request_json(method="POST", endpoint=self._get_endpoint_search(), json=payload)

        scored = []
        for hit in data.get("result", []):
            point_payload = hit.get("payload") or {}
            if point_payload.get("tenant_id") != tenant_id:
                continue
            scored.append(ScoredChunk(chunk=self._payload_to_chunk(str(hit.get("id")), point_payload), similarity=float(hit.get("score", 0.0))))

        scored.sort(
            key=lambda s: (
                -s.similarity,
                s.chunk.chunk_index,
                s.chunk.video_created_at or datetime.min.replace(tzinfo=timezone.utc),
                s.chunk.video_id,
            )
        )
        return scored[:top_k]

    async def count_chunks_for_video(self, video_id: str) -> int:
        data = await self.do_request_json(
            method="POST",
            endpoint=self._get_endpoint_count(),
            json={"filter": {"must": [self._match("video_id", video_id)]}, "exact": True},
        )
        return data.get("result", {}).get("count", 0)

    async def get_video_tenant(self, video_id: str) -> str | None:
        registration = await self._get_video_registration(video_id)
        return registration[0] if registration else None

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _get_video_registration(self, video_id: str) -> tuple[str, datetime] | None:
        """Read tenant and creation time of a video from any one of its points."""
        data = await self.do_request_json(
            method="POST",
            endpoint=self._get_endpoint_scroll(),
            json={
                "filter": {"must": [self._match("video_id", video_id)]},
                "limit": 1,
                "with_payload": ["tenant_id", "video_created_at"],
                "with_vector": False,
            },
        )
        points = data.get("result", {}).get("points", [])
        if not points:
            return None
        point_payload = points[0].get("payload") or {}
        created_at = point_payload.get("video_created_at")
        return point_payload.get("tenant_id"), datetime.fromisoformat(created_at) if created_at else datetime.now(timezone.utc)

    def _payload_to_chunk(self, point_id: str, payload: dict) -> Chunk:
        created_at = payload.get("video_created_at")
        return Chunk(
            id=point_id,
            video_id=payload["video_id"],
            tenant_id=payload["tenant_id"],
            chunk_index=payload.get("chunk_index", 0),
            text=payload.get("text", ""),
            start_timestamp=payload.get("start_timestamp", 0.0),
            end_timestamp=payload.get("end_timestamp", 0.0),
            word_count=payload.get("word_count", 0),
            segments=payload.get("segments", []),
            topic_tags=payload.get("topic_tags", []),
            embedding_model=payload.get("embedding_model"),
            video_created_at=datetime.fromisoformat(created_at) if created_at else None,
        )
