"""
AUTOLOC Access Core - Password Hasher

Empreintes des mots de passe staff.

Formats:
    pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>   (défaut, salé et itéré)
    <64 caractères hex>                                  (SHA-256 non salé, historique)
"""

import hashlib
import os
from typing import Optional

from cryptography.hazmat.primitives import constant_time, hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .interfaces import HashingConfig, HashingScheme, IPasswordHasher


_HEX_DIGITS = frozenset("0123456789abcdef")


class PasswordHasher(IPasswordHasher):
    """
    Hachage des mots de passe staff.

    Le schéma configuré ne s'applique qu'aux nouvelles empreintes;
    verify() accepte les deux formats pour rester compatible avec
    les empreintes SHA-256 déjà stockées.

    Example:
        hasher = PasswordHasher(HashingConfig(iterations=1000))
        stored = hasher.hash("secret123")
        hasher.verify("secret123", stored)  # True
    """

    DIGEST_LENGTH: int = 32
    SEPARATOR: str = "$"

    def __init__(self, config: Optional[HashingConfig] = None):
        self._config = config or HashingConfig()

    @property
    def scheme(self) -> HashingScheme:
        return self._config.scheme

    def hash(self, plaintext: str) -> str:
        """
        Calcule l'empreinte d'un mot de passe selon le schéma configuré.

        Args:
            plaintext: Mot de passe en clair

        Returns:
            Empreinte hexadécimale minuscule
        """
        if self._config.scheme == HashingScheme.SHA256_LEGACY:
            return self._legacy_digest(plaintext)

        salt = os.urandom(self._config.salt_bytes)
        digest = self._pbkdf2(plaintext, salt, self._config.iterations)
        return self.SEPARATOR.join(
            [
                HashingScheme.PBKDF2_SHA256.value,
                str(self._config.iterations),
                salt.hex(),
                digest.hex(),
            ]
        )

    def verify(self, plaintext: str, stored: str) -> bool:
        """
        Compare un mot de passe à une empreinte stockée, en temps constant.

        Une empreinte mal formée ne correspond à aucun mot de passe.

        Args:
            plaintext: Mot de passe en clair
            stored: Empreinte stockée (PBKDF2 ou SHA-256 historique)

        Returns:
            True si correspondance
        """
        stored = (stored or "").strip()

        if self._is_legacy_digest(stored):
            candidate = self._legacy_digest(plaintext)
            return constant_time.bytes_eq(candidate.encode("ascii"), stored.encode("ascii"))

        parts = stored.split(self.SEPARATOR)
        if len(parts) != 4 or parts[0] != HashingScheme.PBKDF2_SHA256.value:
            return False

        _, iterations_str, salt_hex, digest_hex = parts
        try:
            iterations = int(iterations_str)
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(digest_hex)
        except ValueError:
            return False

        if iterations <= 0 or len(expected) != self.DIGEST_LENGTH:
            return False

        candidate = self._pbkdf2(plaintext, salt, iterations)
        return constant_time.bytes_eq(candidate, expected)

    def needs_rehash(self, stored: str) -> bool:
        """Indique si l'empreinte est d'un schéma ou d'un coût inférieur à la config."""
        if self._config.scheme == HashingScheme.SHA256_LEGACY:
            return False
        if self._is_legacy_digest(stored):
            return True
        parts = (stored or "").split(self.SEPARATOR)
        if len(parts) != 4:
            return True
        try:
            return int(parts[1]) < self._config.iterations
        except ValueError:
            return True

    def _pbkdf2(self, plaintext: str, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.DIGEST_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(plaintext.encode("utf-8"))

    @staticmethod
    def _legacy_digest(plaintext: str) -> str:
        return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()

    @staticmethod
    def _is_legacy_digest(stored: str) -> bool:
        return len(stored) == 64 and all(c in _HEX_DIGITS for c in stored)
