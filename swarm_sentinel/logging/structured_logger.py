"""
Swarm Sentinel - Structured Logger

Logger JSON structuré avec champs obligatoires: timestamp, level,
correlation_id, node_id, message.
"""

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from .interfaces import (
    IStructuredLogger,
    ISensitiveMasker,
    LogConfig,
    LogEntry,
    LogLevel,
)
from .sensitive_masker import SensitiveMasker


class MissingRequiredFieldError(Exception):
    """Champ obligatoire manquant."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Required field missing: {field_name}")


class InvalidLogLevelError(Exception):
    """Niveau de log invalide."""

    def __init__(self, level: str) -> None:
        self.level = level
        super().__init__(f"Invalid log level: {level}")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré du contrôleur.

    Les entrées sont conservées dans un tampon borné (inspection en tests,
    dernier état en cas d'incident) et envoyées à output_handler s'il existe.

    Example:
        logger = StructuredLogger("quorum-monitor", output_handler=print)
        logger.set_default_node("shuffle-manager-2")
        logger.warn("Quorum lost", event="quorum_lost", ready=1, required=2)
    """

    def __init__(
        self,
        name: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialise le logger structuré.

        Args:
            name: Nom du logger (composant émetteur)
            config: Configuration optionnelle
            masker: Masker pour données sensibles
            output_handler: Destination des lignes JSON (stderr en production)

        Raises:
            ValueError: Si name vide
        """
        if not name or not name.strip():
            raise ValueError("Logger name cannot be empty")

        self._name = name.strip()
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._output_handler = output_handler
        self._entries: Deque[LogEntry] = deque(maxlen=self._config.max_captured_entries)
        self._default_node_id: Optional[str] = self._config.default_node_id
        self._default_correlation_id: Optional[str] = self._config.default_correlation_id

    @property
    def name(self) -> str:
        """Retourne le nom du logger."""
        return self._name

    @property
    def config(self) -> LogConfig:
        """Retourne la configuration."""
        return self._config

    @staticmethod
    def parse_level(level: str) -> LogLevel:
        """
        Convertit un nom de niveau en LogLevel.

        Raises:
            InvalidLogLevelError: Si le nom est inconnu
        """
        try:
            return LogLevel(level.upper())
        except (ValueError, AttributeError):
            raise InvalidLogLevelError(str(level))

    def set_default_node(self, node_id: str) -> None:
        """Définit le node_id par défaut."""
        self._default_node_id = node_id

    def set_default_correlation(self, correlation_id: str) -> None:
        """Définit le correlation_id par défaut."""
        self._default_correlation_id = correlation_id

    def child(self, name: str) -> "StructuredLogger":
        """
        Crée le logger d'un sous-composant avec la même sortie et la même configuration.

        Args:
            name: Nom du sous-composant

        Returns:
            Nouveau StructuredLogger avec le même node_id par défaut
        """
        logger = StructuredLogger(
            name,
            config=self._config,
            masker=self._masker,
            output_handler=self._output_handler,
        )
        if self._default_node_id:
            logger.set_default_node(self._default_node_id)
        return logger

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        node_id: Optional[str] = None,
        event: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Crée un log structuré JSON.

        Processus:
            1. Vérifie niveau >= min_level
            2. Résout correlation_id et node_id
            3. Masque les secrets (clés sensibles, jetons SWMTKN)
            4. Capture l'entrée et l'écrit en JSON

        Returns:
            LogEntry créé ou None si filtré

        Raises:
            MissingRequiredFieldError: Si node_id ou message manquant
        """
        if not self._should_log(level):
            return None

        resolved_correlation = correlation_id or self._default_correlation_id
        if not resolved_correlation:
            resolved_correlation = self._generate_correlation_id()

        resolved_node = node_id or self._default_node_id
        if not resolved_node:
            raise MissingRequiredFieldError("node_id")

        if not message:
            raise MissingRequiredFieldError("message")

        masked_extra: Dict[str, Any] = {}
        if extra and self._config.include_extra:
            masked_extra = self._masker.mask(dict(extra)) if self._config.mask_sensitive else dict(extra)

        if self._config.mask_sensitive:
            message = self._masker.mask_string(message)

        entry = LogEntry(
            timestamp=self._generate_timestamp(),
            level=level,
            correlation_id=resolved_correlation,
            node_id=resolved_node,
            message=message,
            event=event,
            extra=masked_extra,
            logger_name=self._name,
        )

        self._entries.append(entry)

        if self._output_handler:
            self._output_handler(entry.to_json())

        return entry

    def _generate_timestamp(self) -> str:
        """
        Génère un timestamp ISO 8601 UTC avec millisecondes.

        Format: 2024-12-04T14:30:00.123Z
        """
        now = datetime.now(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    def _generate_correlation_id(self) -> str:
        return str(uuid.uuid4())

    def _should_log(self, level: LogLevel) -> bool:
        return LogLevel.get_priority(level) >= LogLevel.get_priority(self._config.min_level)

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau DEBUG."""
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau INFO."""
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau WARN."""
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau ERROR."""
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log niveau CRITICAL."""
        return self.log(LogLevel.CRITICAL, message, **extra)

    def get_entries(self) -> List[LogEntry]:
        """Retourne les entrées de log capturées."""
        return list(self._entries)

    def clear_entries(self) -> None:
        """Efface les entrées capturées."""
        self._entries.clear()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        """Filtre les entrées par niveau."""
        return [e for e in self._entries if e.level == level]

    def get_entries_by_event(self, event: str) -> List[LogEntry]:
        """Filtre les entrées par nom d'événement."""
        return [e for e in self._entries if e.event == event]

    def get_entries_by_correlation(self, correlation_id: str) -> List[LogEntry]:
        """Filtre les entrées par correlation_id."""
        return [e for e in self._entries if e.correlation_id == correlation_id]

    def with_context(
        self,
        correlation_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> "ContextualLogger":
        """
        Crée un logger lié à un cycle.

        Args:
            correlation_id: ID du cycle (généré si omis)
            node_id: Noeud émetteur

        Returns:
            ContextualLogger avec contexte fixé
        """
        return ContextualLogger(
            self,
            correlation_id=correlation_id or self._generate_correlation_id(),
            node_id=node_id or self._default_node_id,
        )


class ContextualLogger:
    """
    Logger avec contexte pré-défini.

    Fixe correlation_id et node_id pour toutes les lignes d'un même cycle.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        correlation_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> None:
        self._logger = logger
        self._correlation_id = correlation_id
        self._node_id = node_id

    @property
    def correlation_id(self) -> Optional[str]:
        return self._correlation_id

    def log(self, level: LogLevel, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log avec contexte."""
        return self._logger.log(
            level,
            message,
            correlation_id=self._correlation_id,
            node_id=self._node_id,
            **extra,
        )

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log DEBUG."""
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log INFO."""
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log WARN."""
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log ERROR."""
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        """Log CRITICAL."""
        return self.log(LogLevel.CRITICAL, message, **extra)
