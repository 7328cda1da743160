"""
Swarm Sentinel - Taxonomie des erreurs du contrôleur.

Seuls deux cas remontent à l'opérateur: un bootstrap qui épuise son budget
de tentatives et une perte de quorum ambiguë. Tout le reste est corrigé par
les boucles avec une trace dans les logs.
"""

from typing import Optional


class SentinelError(Exception):
    """Erreur de base du contrôleur."""

    pass


class RecoverableTimeout(SentinelError):
    """Attente bornée épuisée (jeton de join, adresse du primaire...)."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"{operation} gave up after {attempts} attempts{detail}")


class TransientUnavailable(SentinelError):
    """Dépendance externe brièvement injoignable, réessayée au cycle suivant."""

    def __init__(self, dependency: str, reason: str = "") -> None:
        self.dependency = dependency
        self.reason = reason
        message = f"{dependency} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class QuorumLost(SentinelError):
    """Quorum managers perdu sans récupération automatique possible."""

    def __init__(self, ready_managers: int, required: int, running_instances: int) -> None:
        self.ready_managers = ready_managers
        self.required = required
        self.running_instances = running_instances
        super().__init__(
            f"Quorum lost: {ready_managers} ready managers, {required} required, "
            f"{running_instances} manager instances still running"
        )


class ConfigurationMissing(SentinelError):
    """Fichier ou attribut de configuration introuvable."""

    def __init__(self, name: str, reason: str = "") -> None:
        self.name = name
        message = f"Configuration missing: {name}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class CapacityMismatch(SentinelError):
    """Nombre de réplicas observé différent du nombre désiré."""

    def __init__(self, workload: str, desired: int, running: int) -> None:
        self.workload = workload
        self.desired = desired
        self.running = running
        super().__init__(f"Workload {workload} has {running}/{desired} replicas")


class ConfigurationError(SentinelError):
    """Fichier de configuration invalide."""

    pass
