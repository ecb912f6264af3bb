"""Backend-as-a-service clients."""

from .supabase import (
    SUPABASE,
    AuthResult,
    AuthSession,
    AuthUser,
    DatabaseChange,
    QueryResult,
    StoredObject,
    SupabaseClient,
    Subscription,
    TableQuery,
)

__all__ = [
    "SUPABASE",
    "AuthResult",
    "AuthSession",
    "AuthUser",
    "DatabaseChange",
    "QueryResult",
    "StoredObject",
    "SupabaseClient",
    "Subscription",
    "TableQuery",
]
