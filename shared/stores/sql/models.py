"""SQLAlchemy ORM models for videos, chunks and chat history."""

import json
import uuid
from datetime import datetime, timezone

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.types import TypeDecorator

from shared.stores.sql.SqlDatabase import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Embedding(TypeDecorator):
    """Embedding vector column.

    pgvector `vector` on Postgres, so similarity is ranked by the database;
    a JSON array in TEXT everywhere else.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == "postgresql":
            return value
        return json.dumps([float(x) for x in value])

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return [float(x) for x in value]
        return json.loads(value)


class VideoRow(Base):
    """Registration of a video to its owning tenant."""

    __tablename__ = "videos"

    video_id = Column(String(255), primary_key=True)
    tenant_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ChunkRow(Base):
    __tablename__ = "video_chunks"
    __table_args__ = (UniqueConstraint("video_id", "chunk_index", name="uq_video_chunk_index"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    video_id = Column(String(255), ForeignKey("videos.video_id"), nullable=False, index=True)
    tenant_id = Column(String(255), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    start_timestamp = Column(Float, nullable=False)
    end_timestamp = Column(Float, nullable=False)
    word_count = Column(Integer, nullable=False, default=0)
    embedding = Column(Embedding, nullable=False)
    embedding_model = Column(String(255), nullable=True)
    topic_tags = Column(Text, nullable=False, default="[]")  # JSON array
    segments = Column(Text, nullable=False, default="[]")  # JSON array of segment dicts
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ChatSessionRow(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(255), nullable=False, index=True)
    tenant_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ChatMessageRow(Base):
    """One chat message; seq is the insertion order used for history reads."""

    __tablename__ = "chat_messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("chat_sessions.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # question | answer
    content = Column(Text, nullable=False)
    confidence = Column(Float, nullable=True)
    citations = Column(Text, nullable=False, default="[]")  # JSON array of VideoReference dicts
    feedback = Column(String(16), nullable=True)  # positive | negative
    feedback_comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
