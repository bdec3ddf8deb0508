"""
Tests unitaires SessionManager

Propriétés testées:
    - une seule résolution d'initialisation en vol
    - session staff prioritaire sur l'identité client
    - cache persisté revérifié auprès du store des comptes
    - identifiants refusés: même erreur pour utilisateur inconnu et mauvais mot de passe
    - échec de connexion, d'installation ou de rotation: aucun effet sur la session
"""

import asyncio
import json
import threading

import pytest

from src.auth import (
    ANONYMOUS,
    CustomerSession,
    ISessionManager,
    Phase,
    SessionManager,
    StaffSession,
)
from src.core.errors import (
    AccessValidationError,
    ConflictError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    UpstreamUnavailableError,
)
from src.core.interfaces import HashingConfig, NavigationTarget, Role, SessionConfig
from src.core.password_hasher import PasswordHasher
from src.stores import KEY_ACTIVE, KEY_ROLE, KEY_STAFF_ID, InMemorySessionStore, PersistedSessionRecord


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


async def seed_account(store, hasher, username: str, password: str, role: Role) -> int:
    """Crée un compte staff hors bootstrap."""
    return await store.create_account(username, hasher.hash(password), role)


class GatedHasher(PasswordHasher):
    """verify() attend un signal posé depuis la boucle d'événements."""

    def __init__(self):
        super().__init__(HashingConfig(iterations=1000))
        self.gate = threading.Event()
        self.released = None

    def verify(self, plaintext: str, stored: str) -> bool:
        self.released = self.gate.wait(timeout=1.0)
        return super().verify(plaintext, stored)


def log_messages(log_lines):
    return [json.loads(line)["message"] for line in log_lines]


@pytest.fixture
def build_manager(identity, credential_store, hasher, logger):
    """Fabrique de managers partageant fournisseur et store (redémarrage simulé)."""

    def build(session_store, config=None):
        return SessionManager(
            identity,
            credential_store,
            session_store,
            hasher,
            config=config or SessionConfig(),
            logger=logger.child("session"),
        )

    return build


# ══════════════════════════════════════════════════════════════════════════════
# TESTS INTERFACE
# ══════════════════════════════════════════════════════════════════════════════


class TestSessionManagerInterface:
    """Vérifie conformité à l'interface."""

    def test_implements_interface(self, manager):
        """SessionManager implémente ISessionManager."""
        assert isinstance(manager, ISessionManager)

    def test_initial_state(self, manager):
        """Avant initialisation: anonyme, en cours d'initialisation."""
        snapshot = manager.snapshot()

        assert snapshot.state == ANONYMOUS
        assert snapshot.initializing is True
        assert snapshot.bootstrapped is None
        assert manager.phase == Phase.UNINITIALIZED
        assert manager.staff_role is None
        assert manager.staff_id is None
        assert manager.customer_identity is None


# ══════════════════════════════════════════════════════════════════════════════
# TESTS INITIALISATION
# ══════════════════════════════════════════════════════════════════════════════


class TestInitialize:
    """Résolution de l'identité au démarrage."""

    @pytest.mark.asyncio
    async def test_anonymous(self, manager):
        """Aucune session: anonyme, initialisation terminée."""
        snapshot = await manager.initialize()

        assert snapshot.state == ANONYMOUS
        assert snapshot.initializing is False
        assert snapshot.identity_resolved is True

    @pytest.mark.asyncio
    async def test_customer_session_restored(self, manager, provider_client):
        """Session fournisseur existante → client authentifié."""
        provider_client.start_session("client@autoloc.ma")

        await manager.initialize()

        assert manager.is_authenticated_customer is True
        assert manager.customer_identity.email == "client@autoloc.ma"

    @pytest.mark.asyncio
    async def test_staff_session_restored(self, manager, credential_store, session_store, hasher):
        """Cache persisté valide → session staff rétablie."""
        staff_id = await seed_account(credential_store, hasher, "sara", "pw", Role.ASSISTANT)
        await session_store.write(PersistedSessionRecord.for_staff(staff_id, Role.ASSISTANT))

        await manager.initialize()

        assert manager.state == StaffSession(staff_id=staff_id, role=Role.ASSISTANT)

    @pytest.mark.asyncio
    async def test_staff_takes_precedence(self, manager, credential_store, session_store, hasher, provider_client):
        """Staff et client présents: la session staff gagne."""
        staff_id = await seed_account(credential_store, hasher, "aymen", "pw", Role.ADMIN)
        await session_store.write(PersistedSessionRecord.for_staff(staff_id, Role.ADMIN))
        provider_client.start_session("client@autoloc.ma")

        await manager.initialize()

        assert manager.is_authenticated_staff is True
        assert manager.is_authenticated_customer is False

    @pytest.mark.asyncio
    async def test_stale_role_discarded(self, manager, credential_store, session_store, hasher):
        """Rôle du cache différent du compte → cache effacé, pas de staff."""
        staff_id = await seed_account(credential_store, hasher, "sara", "pw", Role.ASSISTANT)
        await session_store.write(PersistedSessionRecord.for_staff(staff_id, Role.ADMIN))

        await manager.initialize()

        assert manager.is_authenticated_staff is False
        assert session_store.raw == {}

    @pytest.mark.asyncio
    async def test_unknown_account_discarded(self, manager, session_store):
        """Compte du cache disparu → cache effacé."""
        await session_store.write(PersistedSessionRecord.for_staff(42, Role.ADMIN))

        await manager.initialize()

        assert manager.state == ANONYMOUS
        assert session_store.raw == {}

    @pytest.mark.parametrize(
        "raw",
        [
            {KEY_ACTIVE: "true", KEY_ROLE: "SuperUser", KEY_STAFF_ID: "1"},
            {KEY_ACTIVE: "true", KEY_ROLE: "Admin", KEY_STAFF_ID: "abc"},
        ],
    )
    @pytest.mark.asyncio
    async def test_malformed_cache_discarded(self, build_manager, credential_store, hasher, raw):
        """Rôle inconnu ou id non numérique → cache effacé."""
        await seed_account(credential_store, hasher, "aymen", "pw", Role.ADMIN)
        session_store = InMemorySessionStore(raw)
        manager = build_manager(session_store)

        await manager.initialize()

        assert manager.state == ANONYMOUS
        assert session_store.raw == {}

    @pytest.mark.asyncio
    async def test_single_flight(self, manager, provider_client):
        """Appels concurrents: une seule résolution."""
        provider_client.get_session_delay = 0.02

        snapshots = await asyncio.gather(*(manager.initialize() for _ in range(5)))

        assert provider_client.get_session_calls == 1
        assert all(s.initializing is False for s in snapshots)

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, manager, provider_client):
        await manager.initialize()
        await manager.initialize()

        assert provider_client.get_session_calls == 1
        assert provider_client.listener_count == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_allows_retry(self, manager, provider_client):
        """Fournisseur injoignable: l'erreur remonte, un nouvel appel relance."""
        provider_client.unreachable = True

        with pytest.raises(UpstreamUnavailableError):
            await manager.initialize()
        assert manager.phase == Phase.UNINITIALIZED

        provider_client.unreachable = False
        snapshot = await manager.initialize()

        assert snapshot.initializing is False

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_anonymous(self, build_manager, credential_store, hasher, provider_client):
        """Délai dépassé: anonyme, identité non résolue, cache conservé."""
        staff_id = await seed_account(credential_store, hasher, "aymen", "pw", Role.ADMIN)
        session_store = InMemorySessionStore(PersistedSessionRecord.for_staff(staff_id, Role.ADMIN).to_mapping())
        provider_client.get_session_delay = 1.0
        manager = build_manager(session_store, SessionConfig(init_timeout_seconds=0.05))

        snapshot = await manager.initialize()

        assert snapshot.state == ANONYMOUS
        assert snapshot.initializing is False
        assert snapshot.identity_resolved is False
        assert session_store.raw[KEY_ACTIVE] == "true"

    @pytest.mark.asyncio
    async def test_login_during_initialization_wins(self, manager, credential_store, hasher, provider_client):
        """Une connexion terminée pendant la résolution n'est pas écrasée."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        provider_client.start_session("client@autoloc.ma")
        provider_client.get_session_delay = 0.2

        init = asyncio.ensure_future(manager.initialize())
        await asyncio.sleep(0.01)
        await manager.login_as_staff("aymen", "secret123")
        await init

        assert manager.is_authenticated_staff is True
        assert manager.initializing is False


# ══════════════════════════════════════════════════════════════════════════════
# TESTS INSTALLATION
# ══════════════════════════════════════════════════════════════════════════════


class TestBootstrap:
    """Création du premier compte Admin."""

    @pytest.mark.asyncio
    async def test_check_setup_complete(self, manager, credential_store, hasher):
        assert await manager.check_setup_complete() is False
        assert manager.bootstrapped is False

        await seed_account(credential_store, hasher, "aymen", "pw", Role.ADMIN)

        assert await manager.check_setup_complete() is True
        assert manager.bootstrapped is True

    @pytest.mark.asyncio
    async def test_first_admin_scenario(self, manager, credential_store, session_store, hasher):
        """aymen/secret123: compte 1 Admin, connecté, cache écrit, landing métriques."""
        await manager.initialize()

        target = await manager.bootstrap_first_admin("secret123")

        assert target == NavigationTarget.STAFF_METRICS_LANDING
        assert manager.state == StaffSession(staff_id=1, role=Role.ADMIN)
        assert manager.bootstrapped is True
        assert session_store.raw == {KEY_ACTIVE: "true", KEY_ROLE: "Admin", KEY_STAFF_ID: "1"}

        account = await credential_store.find_by_username("aymen")
        assert account.id == 1
        assert account.password_hash != "secret123"
        assert hasher.verify("secret123", account.password_hash) is True

    @pytest.mark.asyncio
    async def test_second_bootstrap_conflicts(self, manager, credential_store, session_store):
        """Deuxième installation: Conflict, premier compte et session inchangés."""
        await manager.bootstrap_first_admin("secret123")
        await manager.sign_out()
        first = await credential_store.find_by_id(1)

        with pytest.raises(ConflictError):
            await manager.bootstrap_first_admin("other-password")

        assert await credential_store.count_accounts() == 1
        assert await credential_store.find_by_id(1) == first
        assert manager.state == ANONYMOUS
        assert session_store.raw == {}

    @pytest.mark.asyncio
    async def test_conflict_marks_setup_complete(self, manager, credential_store, hasher):
        """Compte créé par ailleurs après la vérification: Conflict et installation terminée."""
        assert await manager.check_setup_complete() is False
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)

        with pytest.raises(ConflictError):
            await manager.bootstrap_first_admin("other-password")

        assert manager.bootstrapped is True
        assert manager.state == ANONYMOUS

    @pytest.mark.asyncio
    async def test_empty_password_rejected(self, manager, credential_store):
        with pytest.raises(AccessValidationError):
            await manager.bootstrap_first_admin("")

        assert await credential_store.count_accounts() == 0

    @pytest.mark.asyncio
    async def test_configured_bootstrap_username(self, build_manager, credential_store, session_store):
        manager = build_manager(session_store, SessionConfig(bootstrap_username="gerant"))

        await manager.bootstrap_first_admin("secret123")

        assert (await credential_store.find_by_id(1)).username == "gerant"


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CONNEXION STAFF
# ══════════════════════════════════════════════════════════════════════════════


class TestLoginAsStaff:
    """Connexion staff sur le store des comptes."""

    @pytest.mark.asyncio
    async def test_admin_landing(self, manager, credential_store, hasher):
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)

        assert await manager.login_as_staff("aymen", "secret123") == NavigationTarget.STAFF_METRICS_LANDING
        assert manager.staff_role == Role.ADMIN

    @pytest.mark.asyncio
    async def test_assistant_landing(self, manager, credential_store, session_store, hasher):
        staff_id = await seed_account(credential_store, hasher, "sara", "pw", Role.ASSISTANT)

        target = await manager.login_as_staff("sara", "pw")

        assert target == NavigationTarget.STAFF_RESERVATIONS_LANDING
        assert manager.staff_id == staff_id
        assert session_store.raw[KEY_ROLE] == "Assistant"

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_same_error(self, manager, credential_store, hasher):
        """Utilisateur inconnu et mauvais mot de passe: même erreur, même message."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)

        with pytest.raises(InvalidCredentialsError) as unknown:
            await manager.login_as_staff("nobody", "secret123")
        with pytest.raises(InvalidCredentialsError) as wrong:
            await manager.login_as_staff("aymen", "wrong")

        assert str(unknown.value) == str(wrong.value)

    @pytest.mark.asyncio
    async def test_failed_login_keeps_session(self, manager, credential_store, session_store, hasher):
        """Échec de connexion: session et cache inchangés."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await seed_account(credential_store, hasher, "sara", "pw", Role.ASSISTANT)
        await manager.login_as_staff("aymen", "secret123")
        raw_before = session_store.raw

        with pytest.raises(InvalidCredentialsError):
            await manager.login_as_staff("sara", "wrong")

        assert manager.state == StaffSession(staff_id=1, role=Role.ADMIN)
        assert session_store.raw == raw_before

    @pytest.mark.asyncio
    async def test_legacy_digest_accepted(self, manager, credential_store):
        """Compte historique (SHA-256 non salé) accepté."""
        import hashlib

        await credential_store.create_account("ancien", hashlib.sha256(b"secret123").hexdigest(), Role.ASSISTANT)

        assert await manager.login_as_staff("ancien", "secret123") == NavigationTarget.STAFF_RESERVATIONS_LANDING

    @pytest.mark.asyncio
    async def test_legacy_digest_upgraded_on_login(self, manager, credential_store, hasher, log_lines):
        """Après connexion, l'empreinte historique est remplacée par une empreinte PBKDF2."""
        import hashlib

        await credential_store.create_account("ancien", hashlib.sha256(b"secret123").hexdigest(), Role.ASSISTANT)

        await manager.login_as_staff("ancien", "secret123")

        account = await credential_store.find_by_username("ancien")
        assert account.password_hash.startswith("pbkdf2_sha256$")
        assert hasher.verify("secret123", account.password_hash) is True
        assert hasher.needs_rehash(account.password_hash) is False
        assert "Password upgraded to current scheme" in log_messages(log_lines)

        await manager.sign_out()
        assert await manager.login_as_staff("ancien", "secret123") == NavigationTarget.STAFF_RESERVATIONS_LANDING

    @pytest.mark.asyncio
    async def test_current_digest_not_rewritten(self, manager, credential_store, hasher):
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        before = await credential_store.find_by_username("aymen")

        await manager.login_as_staff("aymen", "secret123")

        assert await credential_store.find_by_username("aymen") == before

    @pytest.mark.asyncio
    async def test_hashing_does_not_block_event_loop(self, identity, credential_store, session_store, hasher):
        """La vérification du mot de passe laisse tourner les autres coroutines."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        gated = GatedHasher()
        manager = SessionManager(identity, credential_store, session_store, gated)

        async def release():
            await asyncio.sleep(0.01)
            gated.gate.set()

        target, _ = await asyncio.gather(manager.login_as_staff("aymen", "secret123"), release())

        assert target == NavigationTarget.STAFF_METRICS_LANDING
        assert gated.released is True

    @pytest.mark.asyncio
    async def test_staff_login_replaces_customer(self, manager, credential_store, hasher, provider_client):
        provider_client.start_session("client@autoloc.ma")
        await manager.initialize()
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)

        await manager.login_as_staff("aymen", "secret123")

        assert manager.is_authenticated_staff is True
        assert manager.customer_identity is None

    @pytest.mark.asyncio
    async def test_credentials_never_logged(self, manager, credential_store, hasher, log_lines):
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)

        await manager.login_as_staff("aymen", "secret123")
        with pytest.raises(InvalidCredentialsError):
            await manager.login_as_staff("aymen", "wrong-pass")

        assert log_lines
        assert not any("secret123" in line or "wrong-pass" in line for line in log_lines)


# ══════════════════════════════════════════════════════════════════════════════
# TESTS ROTATION MOT DE PASSE
# ══════════════════════════════════════════════════════════════════════════════


class TestChangeStaffPassword:
    """Rotation du mot de passe staff."""

    @pytest.mark.asyncio
    async def test_requires_staff_session(self, manager):
        with pytest.raises(NotAuthenticatedError):
            await manager.change_staff_password("a", "b")

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, manager, credential_store, hasher):
        """Mot de passe actuel incorrect: empreinte inchangée."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.login_as_staff("aymen", "secret123")
        before = (await credential_store.find_by_id(1)).password_hash

        with pytest.raises(InvalidCredentialsError, match="Current password is incorrect"):
            await manager.change_staff_password("wrong", "newpass456")

        assert (await credential_store.find_by_id(1)).password_hash == before

    @pytest.mark.asyncio
    async def test_rotation(self, manager, credential_store, hasher):
        """Après rotation: l'ancien mot de passe échoue, le nouveau réussit."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.login_as_staff("aymen", "secret123")
        updated_before = (await credential_store.find_by_id(1)).updated_at

        await manager.change_staff_password("secret123", "newpass456")

        account = await credential_store.find_by_id(1)
        assert account.updated_at >= updated_before
        assert manager.is_authenticated_staff is True

        await manager.sign_out()
        with pytest.raises(InvalidCredentialsError):
            await manager.login_as_staff("aymen", "secret123")
        assert await manager.login_as_staff("aymen", "newpass456") == NavigationTarget.STAFF_METRICS_LANDING

    @pytest.mark.asyncio
    async def test_empty_new_password(self, manager, credential_store, hasher):
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.login_as_staff("aymen", "secret123")

        with pytest.raises(AccessValidationError):
            await manager.change_staff_password("secret123", "")


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CLIENT
# ══════════════════════════════════════════════════════════════════════════════


class TestCustomer:
    """Connexion et inscription client."""

    @pytest.mark.asyncio
    async def test_login_as_customer(self, manager, provider_client):
        provider_client.register("client@autoloc.ma", "motdepasse")

        target = await manager.login_as_customer("client@autoloc.ma", "motdepasse")

        assert target == NavigationTarget.HOME
        assert isinstance(manager.state, CustomerSession)
        assert manager.customer_identity.email == "client@autoloc.ma"

    @pytest.mark.asyncio
    async def test_rejected_login_keeps_state(self, manager, provider_client):
        provider_client.register("client@autoloc.ma", "motdepasse")

        with pytest.raises(InvalidCredentialsError, match="Invalid login credentials"):
            await manager.login_as_customer("client@autoloc.ma", "wrong")

        assert manager.state == ANONYMOUS

    @pytest.mark.asyncio
    async def test_customer_login_clears_staff(self, manager, credential_store, session_store, hasher, provider_client):
        """Connexion client: session staff et cache effacés."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.login_as_staff("aymen", "secret123")
        provider_client.register("client@autoloc.ma", "motdepasse")

        await manager.login_as_customer("client@autoloc.ma", "motdepasse")

        assert manager.is_authenticated_staff is False
        assert manager.is_authenticated_customer is True
        assert session_store.raw == {}

    @pytest.mark.asyncio
    async def test_register_customer(self, manager):
        target = await manager.register_customer("new@autoloc.ma", "motdepasse")

        assert target == NavigationTarget.HOME
        assert manager.customer_identity.email == "new@autoloc.ma"

    @pytest.mark.asyncio
    async def test_register_rejected(self, manager):
        with pytest.raises(AccessValidationError, match="at least 6 characters"):
            await manager.register_customer("new@autoloc.ma", "abc")

        assert manager.state == ANONYMOUS


# ══════════════════════════════════════════════════════════════════════════════
# TESTS DECONNEXION
# ══════════════════════════════════════════════════════════════════════════════


class TestSignOut:
    """Déconnexion."""

    @pytest.mark.asyncio
    async def test_staff_sign_out(self, build_manager, credential_store, session_store, hasher, provider_client):
        """Staff: cache effacé, staff-login, pas de restauration au redémarrage."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        manager = build_manager(session_store)
        await manager.initialize()
        await manager.login_as_staff("aymen", "secret123")

        target = await manager.sign_out()

        assert target == NavigationTarget.STAFF_LOGIN
        assert manager.state == ANONYMOUS
        assert session_store.raw == {}
        assert provider_client.sign_out_calls == 0

        restarted = build_manager(session_store)
        await restarted.initialize()
        assert restarted.is_authenticated_staff is False

    @pytest.mark.asyncio
    async def test_staff_sign_out_restores_open_customer_session(self, manager, credential_store, hasher, provider_client):
        """La session client du fournisseur, toujours ouverte, redevient l'identité courante."""
        provider_client.start_session("client@autoloc.ma")
        await manager.initialize()
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.login_as_staff("aymen", "secret123")

        target = await manager.sign_out()

        assert target == NavigationTarget.STAFF_LOGIN
        assert manager.is_authenticated_staff is False
        assert manager.customer_identity.email == "client@autoloc.ma"
        assert provider_client.sign_out_calls == 0

    @pytest.mark.asyncio
    async def test_staff_sign_out_with_provider_unreachable(self, manager, credential_store, session_store, hasher, provider_client):
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.initialize()
        await manager.login_as_staff("aymen", "secret123")
        provider_client.unreachable = True

        assert await manager.sign_out() == NavigationTarget.STAFF_LOGIN
        assert manager.state == ANONYMOUS
        assert session_store.raw == {}

    @pytest.mark.asyncio
    async def test_customer_sign_out(self, manager, provider_client):
        provider_client.register("client@autoloc.ma", "motdepasse")
        await manager.initialize()
        await manager.login_as_customer("client@autoloc.ma", "motdepasse")

        target = await manager.sign_out()
        await manager.flush_identity_changes()

        assert target == NavigationTarget.CUSTOMER_LOGIN
        assert manager.state == ANONYMOUS
        assert provider_client.sign_out_calls == 1

    @pytest.mark.asyncio
    async def test_anonymous_sign_out(self, manager):
        assert await manager.sign_out() == NavigationTarget.CUSTOMER_LOGIN


# ══════════════════════════════════════════════════════════════════════════════
# TESTS NOTIFICATIONS FOURNISSEUR
# ══════════════════════════════════════════════════════════════════════════════


class TestIdentityChanges:
    """Resynchronisation du suivi client sur notification."""

    @pytest.mark.asyncio
    async def test_signed_in_elsewhere(self, manager, provider_client):
        await manager.initialize()

        await provider_client.emit("SIGNED_IN", provider_client.start_session("client@autoloc.ma"))
        await manager.flush_identity_changes()

        assert manager.customer_identity.email == "client@autoloc.ma"

    @pytest.mark.asyncio
    async def test_signed_out_elsewhere(self, manager, provider_client):
        provider_client.start_session("client@autoloc.ma")
        await manager.initialize()

        await provider_client.emit("SIGNED_OUT", None)
        await manager.flush_identity_changes()

        assert manager.state == ANONYMOUS

    @pytest.mark.asyncio
    async def test_ignored_during_staff_session(self, manager, credential_store, hasher, provider_client):
        """Session staff active: les notifications client n'y touchent pas."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.initialize()
        await manager.login_as_staff("aymen", "secret123")

        await provider_client.emit("SIGNED_IN", provider_client.start_session("client@autoloc.ma"))
        await manager.flush_identity_changes()

        assert manager.state == StaffSession(staff_id=1, role=Role.ADMIN)

    @pytest.mark.asyncio
    async def test_failed_synchronization_logged(self, manager, provider_client, log_lines):
        """L'échec d'application d'une notification est journalisé."""
        await manager.initialize()

        async def broken(identity):
            raise RuntimeError("synchronization failed")

        manager._apply_identity_change = broken
        await provider_client.emit("SIGNED_OUT", None)
        await manager.flush_identity_changes()

        entry = json.loads(log_lines[-1])
        assert entry["level"] == "ERROR"
        assert entry["message"] == "Customer identity synchronization failed"
        assert entry["extra"] == {"error": "synchronization failed", "error_type": "RuntimeError"}


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CYCLE DE VIE
# ══════════════════════════════════════════════════════════════════════════════


class TestTeardown:
    """Réinitialisation explicite."""

    @pytest.mark.asyncio
    async def test_teardown_resets(self, manager, credential_store, session_store, hasher, provider_client):
        """teardown: désabonné, non initialisé, cache conservé."""
        await seed_account(credential_store, hasher, "aymen", "secret123", Role.ADMIN)
        await manager.initialize()
        await manager.login_as_staff("aymen", "secret123")

        await manager.teardown()

        assert manager.phase == Phase.UNINITIALIZED
        assert manager.state == ANONYMOUS
        assert provider_client.listener_count == 0
        assert session_store.raw[KEY_ACTIVE] == "true"

        await manager.initialize()
        assert manager.state == StaffSession(staff_id=1, role=Role.ADMIN)
        assert provider_client.listener_count == 1

    @pytest.mark.asyncio
    async def test_teardown_during_initialization(self, manager, provider_client):
        provider_client.get_session_delay = 1.0
        init = asyncio.ensure_future(manager.initialize())
        await asyncio.sleep(0.01)

        await manager.teardown()

        with pytest.raises(asyncio.CancelledError):
            await init
        assert manager.phase == Phase.UNINITIALIZED


class TestRequireStaff:
    """Contexte d'autorisation des opérations privilégiées."""

    @pytest.mark.asyncio
    async def test_requires_session(self, manager):
        with pytest.raises(NotAuthenticatedError):
            manager.require_staff()

    @pytest.mark.asyncio
    async def test_role_mismatch(self, manager, credential_store, hasher):
        await seed_account(credential_store, hasher, "sara", "pw", Role.ASSISTANT)
        await manager.login_as_staff("sara", "pw")

        assert manager.require_staff().role == Role.ASSISTANT
        with pytest.raises(NotAuthenticatedError, match="Admin role required"):
            manager.require_staff(Role.ADMIN)
