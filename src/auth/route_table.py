"""
AUTOLOC Access Core - Route Table

Routes nommées de l'application et correspondance entre cibles de
navigation et routes.
"""

from typing import Dict, List

from ..core.interfaces import AccessConfig, NavigationTarget, RouteConfig
from .interfaces import RouteRequirement


class UnknownRouteError(LookupError):
    """Route absente de la table."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown route: {name}")


class RouteTable:
    """
    Table des routes construite depuis la configuration.

    Example:
        table = RouteTable.from_config(config)
        requirement = table.requirement_for("admin.kpi.index")
    """

    def __init__(self, routes: List[RouteConfig], targets: Dict[NavigationTarget, str]):
        self._routes: Dict[str, RouteConfig] = {route.name: route for route in routes}
        self._targets = dict(targets)

    @classmethod
    def from_config(cls, config: AccessConfig) -> "RouteTable":
        return cls(config.routes, config.targets)

    @property
    def names(self) -> List[str]:
        return list(self._routes)

    def get(self, name: str) -> RouteConfig:
        route = self._routes.get(name)
        if route is None:
            raise UnknownRouteError(name)
        return route

    def requirement_for(self, name: str) -> RouteRequirement:
        return RouteRequirement.from_route(self.get(name))

    def route_for(self, target: NavigationTarget) -> RouteConfig:
        """Route associée à une cible de navigation."""
        name = self._targets.get(target)
        if name is None:
            raise UnknownRouteError(target.value)
        return self.get(name)

    def is_target(self, name: str, target: NavigationTarget) -> bool:
        """Indique si la route porte la cible de navigation."""
        return self._targets.get(target) == name
