"""
Remote backend interface and its Supabase implementation.
"""

from .base import DEFAULT_AUDIO_BUCKET, DEFAULT_PAGE_SIZE, RemoteDataService, ServerRecord
from .supabase import RemoteConfig, SupabaseDataService

__all__ = [
    "RemoteDataService",
    "ServerRecord",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_AUDIO_BUCKET",
    "RemoteConfig",
    "SupabaseDataService",
]
