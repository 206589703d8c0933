"""
Remote store integration (Supabase REST + Firebase identity bridge).

Modules:
- auth: IdentityUser, SessionTokenManager
- problem_data: row codec for user_problem_data
- supabase_client: SupabaseProblemDataClient
"""
from .auth import IdentityUser, SessionTokenManager, StaticTokenUser
from .supabase_client import ProblemDataStore, SupabaseProblemDataClient

__all__ = [
    "IdentityUser",
    "SessionTokenManager",
    "StaticTokenUser",
    "ProblemDataStore",
    "SupabaseProblemDataClient",
]
