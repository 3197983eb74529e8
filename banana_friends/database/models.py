"""
Database models for the Nano Banana Friends API
"""
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, TIMESTAMP, ForeignKey, JSON, Boolean, Date, Float, Numeric, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class CommunityPrompt(Base):
    """Shared prompt shown in the community gallery"""
    __tablename__ = "community_prompts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False)
    category = Column(String(100), index=True)
    likes = Column(Integer, default=0, nullable=False)
    author = Column(String(255))
    image_url = Column(Text)
    source_url = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(TIMESTAMP, default=func.now())
    updated_at = Column(TIMESTAMP, default=func.now(), onupdate=func.now())


class User(Base):
    """User model - stores account and preference information"""
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    gemini_api_key = Column(Text)
    email = Column(String(255))
    default_resolution = Column(String(10), default="2K")
    default_aspect_ratio = Column(String(10), default="9:16")
    favorite_prompts = Column(JSON, default=list)
    main_face_image_url = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP, default=func.now())
    updated_at = Column(TIMESTAMP, default=func.now(), onupdate=func.now())
    last_login = Column(TIMESTAMP)
    # Relationships
    stats = relationship("UserStats", back_populates="user", uselist=False)
    daily_usage = relationship("DailyUsageHistory", back_populates="user")
    generations = relationship("Generation", back_populates="user")


class UserStats(Base):
    """Running usage counters per user"""
    __tablename__ = "user_stats"
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    daily_prompt_tokens = Column(Integer, default=0)
    daily_output_tokens = Column(Integer, default=0)
    total_prompt_tokens = Column(Integer, default=0)
    total_output_tokens = Column(Integer, default=0)
    daily_cost_usd = Column(Numeric(10, 4), default=0)
    total_cost_usd = Column(Numeric(10, 4), default=0)
    daily_generation_time_seconds = Column(Integer, default=0)
    daily_errors = Column(Integer, default=0)
    daily_reset_date = Column(Date, default=func.current_date())
    total_generation_time_seconds = Column(Integer, default=0)
    total_generations = Column(Integer, default=0)
    total_errors = Column(Integer, default=0)
    last_error_message = Column(Text)
    last_error_timestamp = Column(TIMESTAMP)
    # Relationships
    user = relationship("User", back_populates="stats")


class DailyUsageHistory(Base):
    """One row of usage per user and day"""
    __tablename__ = "daily_usage_history"
    __table_args__ = (UniqueConstraint("user_id", "usage_date"),)
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"))
    usage_date = Column(Date, nullable=False)
    cost_usd = Column(Numeric(10, 4), default=0)
    generations_count = Column(Integer, default=0)
    generation_time_seconds = Column(Integer, default=0)
    prompt_tokens = Column(Integer, default=0)
    output_tokens = Column(Integer, default=0)
    errors_count = Column(Integer, default=0)
    peak_usage_hour = Column(Integer)
    most_used_prompts = Column(JSON)
    created_at = Column(TIMESTAMP, default=func.now())
    # Relationships
    user = relationship("User", back_populates="daily_usage")


class Generation(Base):
    """One queued Gemini image generation"""
    __tablename__ = "generations"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    resolution = Column(String(10), default="2K")
    aspect_ratio = Column(String(10), default="9:16")
    main_face_image_url = Column(Text)
    additional_images = Column(JSON, default=list)
    status = Column(String(20), default="processing", nullable=False, index=True)  # processing, completed, failed
    result_base64 = Column(Text)
    result_image_url = Column(Text)
    gemini_metadata = Column(JSON)
    error_message = Column(Text)
    retry_count = Column(Integer, default=0)
    generation_time_seconds = Column(Float)
    created_at = Column(TIMESTAMP, default=func.now())
    started_at = Column(TIMESTAMP)
    completed_at = Column(TIMESTAMP)
    # Relationships
    user = relationship("User", back_populates="generations")


class AssetTransfer(Base):
    """Intent record of moving one image from object storage to the FTP host"""
    __tablename__ = "asset_transfers"
    id = Column(String(36), primary_key=True, default=_uuid)
    source_bucket = Column(String(255), nullable=False)
    source_path = Column(Text, nullable=False)
    username = Column(String(255), nullable=False)
    filename = Column(String(255), nullable=False)
    remote_path = Column(Text)
    public_url = Column(Text)
    state = Column(String(20), default="pending", nullable=False, index=True)  # pending, uploaded, completed, failed
    error = Column(Text)
    cleanup_error = Column(Text)
    created_at = Column(TIMESTAMP, default=func.now())
    updated_at = Column(TIMESTAMP, default=func.now(), onupdate=func.now())


class PromptMigrationRecord(Base):
    """Applied-once guard for community prompt migrations"""
    __tablename__ = "prompt_migrations"
    __table_args__ = (UniqueConstraint("name", "version"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False)
    rows_scanned = Column(Integer, default=0)
    rows_changed = Column(Integer, default=0)
    rows_rejected = Column(Integer, default=0)
    applied_at = Column(TIMESTAMP, default=func.now())
