"""
AUTOLOC Access Core - Session Manager

Possède l'état de session et orchestre le fournisseur d'identité client,
le store des comptes staff, le hachage et le cache de session persisté.

Cycle de vie:
    UNINITIALIZED → INITIALIZING → READY(Anonymous | Customer | Staff)
    teardown() ramène à UNINITIALIZED.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional, Set, Tuple

from ..core.errors import (
    AccessValidationError,
    ConflictError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    UpstreamUnavailableError,
)
from ..core.interfaces import IPasswordHasher, NavigationTarget, Role, SessionConfig
from ..identity.interfaces import IFederatedIdentity, Identity, Unsubscribe
from ..logging import StructuredLogger
from ..stores.interfaces import (
    ICredentialStore,
    IPersistedSessionStore,
    PersistedSessionRecord,
)
from .interfaces import (
    ANONYMOUS,
    CustomerSession,
    ISessionManager,
    Phase,
    SessionSnapshot,
    SessionState,
    StaffSession,
)


# Même message pour utilisateur inconnu et mauvais mot de passe
STAFF_LOGIN_FAILED = "Invalid username or password"
CURRENT_PASSWORD_INCORRECT = "Current password is incorrect"

STAFF_LANDING: Dict[Role, NavigationTarget] = {
    Role.ADMIN: NavigationTarget.STAFF_METRICS_LANDING,
    Role.ASSISTANT: NavigationTarget.STAFF_RESERVATIONS_LANDING,
}


class SessionManager(ISessionManager):
    """
    Gestionnaire de la session unique d'un client applicatif.

    Une instance est construite explicitement et injectée dans le
    RouteGuard; il n'y a pas d'état global.

    Concurrence:
        - une seule initialisation en vol, les appelants concurrents
          attendent la même résolution
        - les opérations qui modifient la session sont sérialisées par
          un verrou unique, notifications du fournisseur comprises

    Example:
        manager = SessionManager(identity, credential_store, session_store, hasher)
        await manager.initialize()
        target = await manager.login_as_staff("aymen", "secret123")
    """

    def __init__(
        self,
        identity: IFederatedIdentity,
        credential_store: ICredentialStore,
        session_store: IPersistedSessionStore,
        hasher: IPasswordHasher,
        config: Optional[SessionConfig] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._identity = identity
        self._credential_store = credential_store
        self._session_store = session_store
        self._hasher = hasher
        self._config = config or SessionConfig()
        self._logger = logger

        self._state: SessionState = ANONYMOUS
        self._phase = Phase.UNINITIALIZED
        self._bootstrapped: Optional[bool] = None
        self._identity_resolved = False

        self._lock = asyncio.Lock()
        self._init_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._pending_changes: Set[asyncio.Task] = set()
        # Incrémenté à chaque écriture d'état par une opération
        self._writes = 0
        self._dummy_hash: Optional[str] = None

    # ══════════════════════════════════════════════════════════════════════
    # FAITS DÉRIVÉS
    # ══════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def initializing(self) -> bool:
        return self._phase != Phase.READY

    @property
    def bootstrapped(self) -> Optional[bool]:
        return self._bootstrapped

    @property
    def is_authenticated_customer(self) -> bool:
        return isinstance(self._state, CustomerSession)

    @property
    def is_authenticated_staff(self) -> bool:
        return isinstance(self._state, StaffSession)

    @property
    def staff_role(self) -> Optional[Role]:
        return self._state.role if isinstance(self._state, StaffSession) else None

    @property
    def staff_id(self) -> Optional[int]:
        return self._state.staff_id if isinstance(self._state, StaffSession) else None

    @property
    def customer_identity(self) -> Optional[Identity]:
        return self._state.identity if isinstance(self._state, CustomerSession) else None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            phase=self._phase,
            bootstrapped=self._bootstrapped,
            identity_resolved=self._identity_resolved,
        )

    def require_staff(self, role: Optional[Role] = None) -> StaffSession:
        """
        Contexte d'autorisation des opérations privilégiées (CRUD flotte, réservations).

        Args:
            role: Rôle exigé (None = n'importe quel membre du staff)

        Raises:
            NotAuthenticatedError: Pas de session staff, ou rôle insuffisant
        """
        if not isinstance(self._state, StaffSession):
            raise NotAuthenticatedError()
        if role is not None and self._state.role != role:
            raise NotAuthenticatedError(f"{role.value} role required")
        return self._state

    # ══════════════════════════════════════════════════════════════════════
    # INITIALISATION
    # ══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> SessionSnapshot:
        """
        Résout l'identité client et la session staff persistée.

        Les appels concurrents attendent la même résolution. Si la résolution
        échoue (UpstreamUnavailableError), l'erreur remonte à tous les
        appelants et l'appel suivant relance une résolution.

        Returns:
            Session après résolution
        """
        if self._phase == Phase.READY:
            return self.snapshot()

        if self._init_task is None:
            self._phase = Phase.INITIALIZING
            self._init_task = asyncio.ensure_future(self._run_initialization())

        await asyncio.shield(self._init_task)
        return self.snapshot()

    async def _run_initialization(self) -> None:
        writes_at_start = self._writes
        timeout = self._config.init_timeout_seconds
        resolved = True

        try:
            if timeout:
                identity, staff = await asyncio.wait_for(self._resolve_identities(), timeout=timeout)
            else:
                identity, staff = await self._resolve_identities()
        except asyncio.TimeoutError:
            self._log("warn", "Session initialization timed out, falling back to anonymous", timeout_seconds=timeout)
            identity, staff = None, None
            resolved = False
        except Exception:
            self._phase = Phase.UNINITIALIZED
            self._init_task = None
            raise

        async with self._lock:
            # Une opération terminée pendant la résolution a priorité sur des lectures plus anciennes
            if self._writes == writes_at_start:
                if staff is not None:
                    self._state = staff
                elif identity is not None:
                    self._state = CustomerSession(identity)
                else:
                    self._state = ANONYMOUS
            self._identity_resolved = resolved
            if self._unsubscribe is None:
                self._unsubscribe = self._identity.on_change(self._on_identity_change)
            self._phase = Phase.READY

        self._log(
            "info",
            "Session initialized",
            mode=self._mode(),
            identity_resolved=resolved,
        )

    async def _resolve_identities(self) -> Tuple[Optional[Identity], Optional[StaffSession]]:
        identity, record = await asyncio.gather(
            self._identity.get_current_user(),
            self._session_store.read(),
        )
        staff = await self._recover_staff_session(record) if record.active else None
        return identity, staff

    async def _recover_staff_session(self, record: PersistedSessionRecord) -> Optional[StaffSession]:
        """
        Revérifie le cache persisté auprès du store des comptes.

        Un cache mal formé, un compte disparu ou un rôle divergent
        effacent le cache sans rétablir de session staff.
        """
        role = Role.parse(record.role)
        try:
            staff_id = int(record.staff_id)
        except ValueError:
            staff_id = None

        if role is None or staff_id is None:
            self._log("warn", "Discarding malformed staff session cache", role=record.role)
            await self._session_store.clear()
            return None

        try:
            account = await self._credential_store.find_by_id(staff_id)
        except NotFoundError:
            self._log("warn", "Discarding staff session cache for unknown account", staff_id=staff_id)
            await self._session_store.clear()
            return None

        if account.role != role:
            self._log(
                "warn",
                "Discarding staff session cache with stale role",
                staff_id=staff_id,
                cached_role=role.value,
                stored_role=account.role.value,
            )
            await self._session_store.clear()
            return None

        return StaffSession(staff_id=account.id, role=account.role)

    async def teardown(self) -> None:
        """
        Se désabonne du fournisseur et revient à UNINITIALIZED.

        Le cache persisté est conservé: un initialize() suivant rétablit
        la session staff comme après un redémarrage.
        """
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
            try:
                await self._init_task
            except asyncio.CancelledError:
                pass

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        for task in list(self._pending_changes):
            task.cancel()
        self._pending_changes.clear()

        async with self._lock:
            self._state = ANONYMOUS
            self._phase = Phase.UNINITIALIZED
            self._bootstrapped = None
            self._identity_resolved = False
            self._init_task = None

        self._log("info", "Session torn down")

    # ══════════════════════════════════════════════════════════════════════
    # NOTIFICATIONS DU FOURNISSEUR
    # ══════════════════════════════════════════════════════════════════════

    async def _on_identity_change(self, identity: Optional[Identity]) -> None:
        # Le fournisseur peut notifier depuis un sign_in en cours qui détient le verrou:
        # on planifie l'application au lieu de l'attendre ici
        task = asyncio.ensure_future(self._apply_identity_change(identity))
        self._pending_changes.add(task)
        task.add_done_callback(self._identity_change_done)

    def _identity_change_done(self, task: asyncio.Task) -> None:
        self._pending_changes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log(
                "error",
                "Customer identity synchronization failed",
                error=str(error),
                error_type=type(error).__name__,
            )

    async def _apply_identity_change(self, identity: Optional[Identity]) -> None:
        async with self._lock:
            if isinstance(self._state, StaffSession):
                self._log("debug", "Customer identity change ignored during staff session")
                return
            self._state = CustomerSession(identity) if identity is not None else ANONYMOUS
        self._log("info", "Customer identity synchronized", signed_in=identity is not None)

    async def flush_identity_changes(self) -> None:
        """Attend l'application des notifications du fournisseur déjà reçues."""
        while self._pending_changes:
            await asyncio.gather(*list(self._pending_changes), return_exceptions=True)

    # ══════════════════════════════════════════════════════════════════════
    # SUIVI STAFF
    # ══════════════════════════════════════════════════════════════════════

    async def check_setup_complete(self) -> bool:
        """
        Vérifie qu'au moins un compte staff existe et met le résultat en cache.

        Raises:
            UpstreamUnavailableError: Store injoignable
        """
        count = await self._credential_store.count_accounts()
        self._bootstrapped = count > 0
        return self._bootstrapped

    async def bootstrap_first_admin(self, plaintext: str) -> NavigationTarget:
        """
        Crée le premier compte (rôle Admin, username de bootstrap) puis le connecte.

        Raises:
            AccessValidationError: Mot de passe vide
            ConflictError: Un compte staff existe déjà (vérifié par le store)
        """
        self._require_password(plaintext)
        username = self._config.bootstrap_username

        async with self._lock:
            digest = await self._hash(plaintext)
            try:
                staff_id = await self._credential_store.insert_first_account(username, digest, Role.ADMIN)
            except ConflictError:
                # Compte créé par ailleurs: l'installation est terminée
                self._bootstrapped = True
                raise
            self._bootstrapped = True
            self._log("info", "First admin account created", staff_id=staff_id, username=username)
            return await self._login_as_staff_locked(username, plaintext)

    async def login_as_staff(self, username: str, plaintext: str) -> NavigationTarget:
        """
        Connecte un membre du staff.

        Returns:
            STAFF_METRICS_LANDING (Admin) ou STAFF_RESERVATIONS_LANDING (Assistant)

        Raises:
            InvalidCredentialsError: Utilisateur inconnu ou mauvais mot de passe (même message)
        """
        async with self._lock:
            return await self._login_as_staff_locked(username, plaintext)

    async def _login_as_staff_locked(self, username: str, plaintext: str) -> NavigationTarget:
        try:
            account = await self._credential_store.find_by_username(username)
        except NotFoundError:
            # Même coût de vérification qu'un compte existant
            await self._verify(plaintext, await self._get_dummy_hash())
            self._log("warn", "Staff login rejected", username=username)
            raise InvalidCredentialsError(STAFF_LOGIN_FAILED)

        if not await self._verify(plaintext, account.password_hash):
            self._log("warn", "Staff login rejected", username=username)
            raise InvalidCredentialsError(STAFF_LOGIN_FAILED)

        if self._hasher.needs_rehash(account.password_hash):
            await self._upgrade_password_hash(account.id, plaintext)

        staff = StaffSession(staff_id=account.id, role=account.role)
        await self._session_store.write(PersistedSessionRecord.for_staff(staff.staff_id, staff.role))
        self._set_state(staff)

        self._log("info", "Staff login succeeded", staff_id=staff.staff_id, role=staff.role.value)
        return STAFF_LANDING[staff.role]

    async def _upgrade_password_hash(self, staff_id: int, plaintext: str) -> None:
        """Recalcule une empreinte historique ou trop faible après vérification réussie."""
        digest = await self._hash(plaintext)
        try:
            await self._credential_store.update_password_hash(staff_id, digest, datetime.now(timezone.utc))
        except UpstreamUnavailableError as e:
            # La connexion reste valide, nouvel essai à la prochaine connexion
            self._log("warn", "Password upgrade deferred", staff_id=staff_id, error=str(e))
            return
        self._log("info", "Password upgraded to current scheme", staff_id=staff_id)

    async def change_staff_password(self, current_plaintext: str, new_plaintext: str) -> None:
        """
        Rotation du mot de passe du membre du staff connecté.

        Raises:
            NotAuthenticatedError: Pas de session staff
            InvalidCredentialsError: Mot de passe actuel incorrect
            AccessValidationError: Nouveau mot de passe vide
        """
        async with self._lock:
            if not isinstance(self._state, StaffSession):
                raise NotAuthenticatedError()
            staff_id = self._state.staff_id

            try:
                account = await self._credential_store.find_by_id(staff_id)
            except NotFoundError:
                raise InvalidCredentialsError(CURRENT_PASSWORD_INCORRECT)

            if not await self._verify(current_plaintext, account.password_hash):
                self._log("warn", "Password change rejected", staff_id=staff_id)
                raise InvalidCredentialsError(CURRENT_PASSWORD_INCORRECT)

            self._require_password(new_plaintext)
            new_digest = await self._hash(new_plaintext)
            await self._credential_store.update_password_hash(staff_id, new_digest, datetime.now(timezone.utc))

        self._log("info", "Staff password changed", staff_id=staff_id)

    # ══════════════════════════════════════════════════════════════════════
    # SUIVI CLIENT
    # ══════════════════════════════════════════════════════════════════════

    async def login_as_customer(self, email: str, password: str) -> NavigationTarget:
        """
        Connecte un client via le fournisseur d'identité.

        Raises:
            InvalidCredentialsError: Refus du fournisseur (message verbatim)
        """
        async with self._lock:
            identity = await self._identity.sign_in(email, password)
            await self._enter_customer_session(identity)
        self._log("info", "Customer login succeeded", email=identity.email)
        return NavigationTarget.HOME

    async def register_customer(self, email: str, password: str) -> NavigationTarget:
        """
        Inscrit un client via le fournisseur d'identité.

        Raises:
            AccessValidationError: Données refusées par le fournisseur (message verbatim)
        """
        async with self._lock:
            identity = await self._identity.sign_up(email, password)
            await self._enter_customer_session(identity)
        self._log("info", "Customer registered", email=identity.email)
        return NavigationTarget.HOME

    async def _enter_customer_session(self, identity: Identity) -> None:
        if isinstance(self._state, StaffSession):
            await self._session_store.clear()
        self._set_state(CustomerSession(identity))

    # ══════════════════════════════════════════════════════════════════════
    # DECONNEXION
    # ══════════════════════════════════════════════════════════════════════

    async def sign_out(self) -> NavigationTarget:
        """
        Termine la session courante.

        La session client du fournisseur n'est pas touchée par une
        déconnexion staff: elle redevient l'identité courante si elle
        est toujours ouverte.

        Returns:
            STAFF_LOGIN en mode staff, CUSTOMER_LOGIN sinon
        """
        async with self._lock:
            if isinstance(self._state, StaffSession):
                staff_id = self._state.staff_id
                await self._session_store.clear()
                identity = await self._current_customer()
                self._set_state(CustomerSession(identity) if identity is not None else ANONYMOUS)
                self._log("info", "Staff signed out", staff_id=staff_id, mode=self._mode())
                return NavigationTarget.STAFF_LOGIN

            await self._identity.sign_out()
            self._set_state(ANONYMOUS)
        self._log("info", "Customer signed out")
        return NavigationTarget.CUSTOMER_LOGIN

    # ══════════════════════════════════════════════════════════════════════
    # INTERNES
    # ══════════════════════════════════════════════════════════════════════

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        self._writes += 1

    def _mode(self) -> str:
        if isinstance(self._state, StaffSession):
            return "staff"
        if isinstance(self._state, CustomerSession):
            return "customer"
        return "anonymous"

    async def _current_customer(self) -> Optional[Identity]:
        try:
            return await self._identity.get_current_user()
        except UpstreamUnavailableError as e:
            self._log("warn", "Customer identity not resynchronized", error=str(e))
            return None

    # Dérivation PBKDF2 hors de la boucle d'événements
    async def _hash(self, plaintext: str) -> str:
        return await asyncio.to_thread(self._hasher.hash, plaintext)

    async def _verify(self, plaintext: str, stored: str) -> bool:
        return await asyncio.to_thread(self._hasher.verify, plaintext, stored)

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await self._hash("autoloc-dummy-credential")
        return self._dummy_hash

    @staticmethod
    def _require_password(plaintext: str) -> None:
        if not plaintext:
            raise AccessValidationError("Password cannot be empty")

    def _log(self, level: str, message: str, **extra) -> None:
        if self._logger:
            getattr(self._logger, level)(message, **extra)
