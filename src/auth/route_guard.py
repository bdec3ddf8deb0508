"""
AUTOLOC Access Core - Route Guard

Décide, pour chaque tentative de navigation, Allow ou RedirectTo(cible).

Règles (évaluées dans l'ordre, la première qui s'applique gagne):
    1. requires_admin ou requires_super_admin sans session staff → staff-login
    2. requires_super_admin avec un rôle autre que Admin        → reservations-index
    3. requires_auth sans client ni staff                        → customer-login
    4. sinon Allow
"""

from typing import Optional

from ..core.interfaces import NavigationTarget, Role
from ..logging import StructuredLogger
from .interfaces import (
    ALLOW,
    Decision,
    IRouteGuard,
    RedirectTo,
    RouteRequirement,
    SessionSnapshot,
)
from .route_table import RouteTable
from .session_manager import SessionManager


class RouteGuard(IRouteGuard):
    """
    Garde de navigation.

    Attend la fin de l'initialisation de la session avant toute décision
    dépendant de l'identité.

    Example:
        guard = RouteGuard(manager, RouteTable.from_config(config))
        decision = await guard.authorize_route("admin.kpi.index")
    """

    def __init__(
        self,
        session_manager: SessionManager,
        route_table: Optional[RouteTable] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._session = session_manager
        self._routes = route_table
        self._logger = logger

    @staticmethod
    def decide(requirement: RouteRequirement, snapshot: SessionSnapshot) -> Decision:
        """
        Décision pure à partir d'une session déjà résolue.

        Args:
            requirement: Exigences de la route demandée
            snapshot: Session courante

        Returns:
            ALLOW ou RedirectTo(cible)
        """
        staff = snapshot.staff_session
        needs_staff = requirement.requires_admin or requirement.requires_super_admin

        if needs_staff and staff is None:
            return RedirectTo(NavigationTarget.STAFF_LOGIN)

        if requirement.requires_super_admin and staff.role != Role.ADMIN:
            return RedirectTo(NavigationTarget.RESERVATIONS_INDEX)

        if requirement.requires_auth and staff is None and snapshot.customer_identity is None:
            return RedirectTo(NavigationTarget.CUSTOMER_LOGIN)

        return ALLOW

    async def authorize(self, requirement: RouteRequirement) -> Decision:
        snapshot = self._session.snapshot()
        if snapshot.initializing:
            snapshot = await self._session.initialize()
        return self.decide(requirement, snapshot)

    async def authorize_route(self, name: str) -> Decision:
        """
        Décide pour une route nommée de la table.

        La page de connexion staff renvoie vers la création du premier
        compte tant qu'aucun compte n'existe, et inversement.

        Raises:
            UnknownRouteError: Route absente de la table
            UpstreamUnavailableError: Store des comptes injoignable
        """
        if self._routes is None:
            raise ValueError("RouteGuard has no route table")

        requirement = self._routes.requirement_for(name)
        decision = await self.authorize(requirement)

        if decision == ALLOW:
            decision = await self._setup_redirect(name) or decision

        if self._logger and decision != ALLOW:
            self._logger.debug("Navigation redirected", route=name, target=decision.target.value)
        return decision

    async def _setup_redirect(self, name: str) -> Optional[RedirectTo]:
        is_login = self._routes.is_target(name, NavigationTarget.STAFF_LOGIN)
        is_setup = self._routes.is_target(name, NavigationTarget.STAFF_SETUP)
        if not (is_login or is_setup):
            return None

        # Seul un résultat positif est définitif: un compte peut être créé par ailleurs
        bootstrapped = self._session.bootstrapped
        if not bootstrapped:
            bootstrapped = await self._session.check_setup_complete()

        if is_login and not bootstrapped:
            return RedirectTo(NavigationTarget.STAFF_SETUP)
        if is_setup and bootstrapped:
            return RedirectTo(NavigationTarget.STAFF_LOGIN)
        return None
