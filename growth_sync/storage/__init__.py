"""
Backing Store

PostgREST (Supabase) implementation and an in-memory twin for tests and dry runs.
"""

from growth_sync.storage.base import Storage
from growth_sync.storage.memory import MemoryStorage
from growth_sync.storage.supabase import SupabaseStorage

__all__ = ["Storage", "MemoryStorage", "SupabaseStorage"]
