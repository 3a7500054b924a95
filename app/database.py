"""Database connection and utilities"""
from supabase import create_client, Client
from app.config import get_settings

settings = get_settings()

# Service role client (bypasses RLS). Used for integration status writes,
# delivery logs and submission inserts.
supabase_admin: Client = create_client(
    settings.supabase_url,
    settings.supabase_service_role_key
)
