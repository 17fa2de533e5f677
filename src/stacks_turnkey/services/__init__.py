"""SDK services: authentication and Stacks transactions."""

from stacks_turnkey.services.auth_service import AuthError, AuthService
from stacks_turnkey.services.transaction_service import TransactionService
from stacks_turnkey.services.types import (
    LoginSession,
    OAuthProviderParams,
    PasskeyParams,
    SubOrgFilterType,
    WalletAuthParams,
    WalletType,
)

__all__ = [
    "AuthError",
    "AuthService",
    "TransactionService",
    "LoginSession",
    "OAuthProviderParams",
    "PasskeyParams",
    "SubOrgFilterType",
    "WalletAuthParams",
    "WalletType",
]
