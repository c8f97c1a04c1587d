"""Storage: in-memory repositories and the Supabase client."""

from autoflow.db.repositories import CredentialRepository, ExecutionRepository, WorkflowRepository
from autoflow.db.supabase import get_supabase_client, SupabaseClient

__all__ = [
    "CredentialRepository",
    "ExecutionRepository",
    "WorkflowRepository",
    "get_supabase_client",
    "SupabaseClient",
]
