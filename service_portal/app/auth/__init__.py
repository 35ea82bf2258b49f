"""
Authentication helpers for the portal service.
"""

from .service_account import Credential, CredentialSigner, TokenCache
from .admin_session import AdminAuthenticator, AdminSession

__all__ = [
    "Credential",
    "CredentialSigner",
    "TokenCache",
    "AdminAuthenticator",
    "AdminSession",
]
