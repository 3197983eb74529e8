from .models import (
    Base, CommunityPrompt, User, UserStats, DailyUsageHistory, Generation, AssetTransfer, PromptMigrationRecord
)
from .connection import engine, SessionLocal, get_db, get_db_session, init_db, create_tables
__all__ = [
    "Base",
    "CommunityPrompt",
    "User",
    "UserStats",
    "DailyUsageHistory",
    "Generation",
    "AssetTransfer",
    "PromptMigrationRecord",
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_session",
    "init_db",
    "create_tables"
]
