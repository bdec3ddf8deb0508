"""
AUTOLOC Access Core - Provider Token Verifier

Vérifie les jetons de session du fournisseur d'identité client
(JWT signé par secret partagé) et en extrait l'identité.
"""

from datetime import datetime, timezone
from typing import List, Optional

import jwt

from .interfaces import Identity


class TokenValidationError(Exception):
    """Jeton de session invalide."""

    pass


class TokenExpiredError(TokenValidationError):
    """Jeton de session expiré."""

    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class ProviderTokenVerifier:
    """
    Vérificateur des jetons de session client.

    Example:
        verifier = ProviderTokenVerifier(secret, audience="authenticated")
        identity = verifier.verify(session.access_token)
    """

    def __init__(
        self,
        secret: str,
        audience: Optional[str] = "authenticated",
        algorithms: Optional[List[str]] = None,
        leeway_seconds: int = 0,
    ):
        """
        Args:
            secret: Secret partagé de signature des jetons
            audience: Audience attendue. Si None, pas de vérification.
            algorithms: Algorithmes acceptés (HS256 par défaut)
            leeway_seconds: Tolérance d'horloge sur exp
        """
        if not secret:
            raise ValueError("secret cannot be empty")
        self._secret = secret
        self.audience = audience
        self.algorithms = algorithms or ["HS256"]
        self.leeway_seconds = leeway_seconds

    def verify(self, token: str) -> Identity:
        """
        Valide le jeton et retourne l'identité.

        Raises:
            TokenExpiredError: Jeton expiré
            TokenValidationError: Signature, audience ou claims invalides
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=self.algorithms,
                audience=self.audience,
                leeway=self.leeway_seconds,
                options={
                    "require": ["exp", "sub"],
                    "verify_exp": True,
                    "verify_aud": self.audience is not None,
                },
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            raise TokenValidationError(f"Invalid token: {e}")

        return Identity(
            user_id=str(payload["sub"]),
            email=payload.get("email"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
