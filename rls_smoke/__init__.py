"""
RLS Smoke Test
==============

Provisions two throwaway Supabase users and checks that row-level security
keeps each user's inventory rows private.

Usage:
    python -m rls_smoke
"""

__version__ = "1.0.0"
