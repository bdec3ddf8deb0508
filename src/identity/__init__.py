"""
AUTOLOC Access Core - Identity

Adaptateur du fournisseur d'identité client (sessions clients).
"""

from .interfaces import (
    Identity,
    ProviderSession,
    ProviderError,
    IIdentityProviderClient,
    IFederatedIdentity,
)
from .token_verifier import ProviderTokenVerifier, TokenValidationError, TokenExpiredError
from .federated_adapter import FederatedIdentityAdapter

__all__ = [
    "Identity",
    "ProviderSession",
    "ProviderError",
    "IIdentityProviderClient",
    "IFederatedIdentity",
    "ProviderTokenVerifier",
    "TokenValidationError",
    "TokenExpiredError",
    "FederatedIdentityAdapter",
]
