"""
AUTOLOC Access Core - Config Validator

Règles de cohérence de la table des routes et des cibles de navigation.
"""

from datetime import datetime
from typing import Callable, Dict, List

from .interfaces import (
    AccessConfig,
    IConfigValidator,
    NavigationTarget,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)


# Cibles qui doivent rester accessibles sans session, sinon boucle de redirection
PUBLIC_TARGETS = (
    NavigationTarget.STAFF_LOGIN,
    NavigationTarget.STAFF_SETUP,
    NavigationTarget.CUSTOMER_LOGIN,
    NavigationTarget.HOME,
)


class ConfigValidator(IConfigValidator):
    """Validation de cohérence des configurations."""

    def __init__(self):
        self._rules: Dict[str, Callable[[AccessConfig], List[ValidationIssue]]] = {
            "route_unique_name": self._check_unique_names,
            "route_flags": self._check_route_flags,
            "target_coverage": self._check_target_coverage,
            "public_targets": self._check_public_targets,
        }

    def validate(self, config: AccessConfig) -> ValidationResult:
        """Applique toutes les règles et retourne toutes les erreurs."""
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        for rule in self._rules.values():
            for issue in rule(config):
                if issue.severity == ValidationSeverity.BLOCKING:
                    errors.append(issue)
                else:
                    warnings.append(issue)

        return ValidationResult(valid=len(errors) == 0, errors=errors, warnings=warnings, checked_at=datetime.now())

    def _check_unique_names(self, config: AccessConfig) -> List[ValidationIssue]:
        seen = set()
        issues = []
        for route in config.routes:
            if route.name in seen:
                issues.append(
                    ValidationIssue(
                        rule="route_unique_name",
                        message=f"Duplicate route name '{route.name}'",
                        location=f"routes[{route.name}]",
                    )
                )
            seen.add(route.name)
        return issues

    def _check_route_flags(self, config: AccessConfig) -> List[ValidationIssue]:
        """requires_super_admin implique requires_admin, qui implique requires_auth."""
        issues = []
        for route in config.routes:
            if route.requires_super_admin and not route.requires_admin:
                issues.append(
                    ValidationIssue(
                        rule="route_flags",
                        message="requires_super_admin without requires_admin: admin requirement is implied",
                        location=f"routes[{route.name}]",
                        severity=ValidationSeverity.WARNING,
                    )
                )
            if (route.requires_admin or route.requires_super_admin) and not route.requires_auth:
                issues.append(
                    ValidationIssue(
                        rule="route_flags",
                        message="staff-only route without requires_auth: auth requirement is implied",
                        location=f"routes[{route.name}]",
                        severity=ValidationSeverity.WARNING,
                    )
                )
        return issues

    def _check_target_coverage(self, config: AccessConfig) -> List[ValidationIssue]:
        """Chaque cible de navigation doit pointer vers une route déclarée."""
        route_names = {route.name for route in config.routes}
        issues = []
        for target in NavigationTarget:
            route_name = config.targets.get(target)
            if route_name is None:
                issues.append(
                    ValidationIssue(
                        rule="target_coverage",
                        message=f"No route mapped for navigation target '{target.value}'",
                        location="targets",
                    )
                )
            elif route_name not in route_names:
                issues.append(
                    ValidationIssue(
                        rule="target_coverage",
                        message=f"Target '{target.value}' points to unknown route '{route_name}'",
                        location=f"targets[{target.value}]",
                    )
                )
        return issues

    def _check_public_targets(self, config: AccessConfig) -> List[ValidationIssue]:
        routes = {route.name: route for route in config.routes}
        issues = []
        for target in PUBLIC_TARGETS:
            route = routes.get(config.targets.get(target, ""))
            if route and (route.requires_auth or route.requires_admin or route.requires_super_admin):
                issues.append(
                    ValidationIssue(
                        rule="public_targets",
                        message=f"Route for '{target.value}' must not require a session",
                        location=f"routes[{route.name}]",
                    )
                )
        return issues
