"""
LinkedIn Growth Sync

Scheduled jobs that collect LinkedIn activity through Unipile and sync it into Supabase.
"""

__version__ = "0.3.0"
