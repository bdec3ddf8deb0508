"""
AUTOLOC Access Core - Errors

Taxonomie des erreurs remontées par le coeur d'accès.
Toutes les opérations d'identification propagent ces erreurs à l'appelant.
"""

from typing import Optional


class AccessError(Exception):
    """Erreur de base du coeur d'accès."""

    kind: str = "access_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class InvalidCredentialsError(AccessError):
    """
    Identifiants refusés.

    Le message ne distingue jamais utilisateur inconnu et mauvais mot de passe.
    """

    kind = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials", cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause)


class NotAuthenticatedError(AccessError):
    """Opération réservée à une session staff absente."""

    kind = "not_authenticated"

    def __init__(self, message: str = "Staff session required", cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause)


class ConflictError(AccessError):
    """Création du premier compte alors qu'un compte staff existe déjà."""

    kind = "conflict"

    def __init__(self, message: str = "A staff account already exists", cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause)


class AccessValidationError(AccessError):
    """Données d'inscription refusées par le fournisseur d'identité."""

    kind = "validation_error"


class UpstreamUnavailableError(AccessError):
    """Store distant ou fournisseur d'identité injoignable."""

    kind = "upstream_unavailable"


class NotFoundError(AccessError):
    """Compte staff introuvable (niveau adaptateur uniquement)."""

    kind = "not_found"
