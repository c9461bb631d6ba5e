"""
FastAPI dependencies.

Routers receive their settings and data-access collaborators through
Depends(), so tests can swap them with app.dependency_overrides.
"""

from functools import lru_cache
from pathlib import Path
from typing import Tuple

from config.settings import Settings, get_settings as load_settings
from repositories.in_memory import InMemoryPromotionStore, InMemoryRiskHistory, load_seed_file
from services.promotion_service import PromotionDataAccess
from services.risk_service import RiskHistoryAccess


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def _memory_stores() -> Tuple[InMemoryPromotionStore, InMemoryRiskHistory]:
    seed_file = get_settings().memory_seed_file
    if seed_file:
        return load_seed_file(Path(seed_file))
    return InMemoryPromotionStore(), InMemoryRiskHistory()


@lru_cache(maxsize=1)
def _supabase_promotion_store() -> PromotionDataAccess:
    # Built on first use: the Supabase client needs credentials.
    from repositories.promotion_repository import SupabasePromotionStore
    return SupabasePromotionStore()


@lru_cache(maxsize=1)
def _supabase_risk_history() -> RiskHistoryAccess:
    from repositories.risk_history_repository import SupabaseRiskHistory
    return SupabaseRiskHistory()


def get_promotion_store() -> PromotionDataAccess:
    if get_settings().data_backend == "memory":
        return _memory_stores()[0]
    return _supabase_promotion_store()


def get_risk_history() -> RiskHistoryAccess:
    if get_settings().data_backend == "memory":
        return _memory_stores()[1]
    return _supabase_risk_history()


__all__ = [
    "get_settings",
    "get_promotion_store",
    "get_risk_history",
]
