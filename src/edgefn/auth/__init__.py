"""Supabase 凭据存储与 token 管理。"""

from .credentials import CredentialRecord, CredentialStore, FileCredentialStore
from .tokens import REFRESH_LOCK_NAME, TokenManager, is_token_stale

__all__ = [
    "CredentialRecord",
    "CredentialStore",
    "FileCredentialStore",
    "REFRESH_LOCK_NAME",
    "TokenManager",
    "is_token_stale",
]
