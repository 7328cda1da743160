"""
Tests unitaires StructuredLogger

Champs obligatoires, filtrage par niveau, contexte de cycle, masquage.
"""

import json

import pytest

from swarm_sentinel.logging import (
    ContextualLogger,
    InvalidLogLevelError,
    IStructuredLogger,
    LogConfig,
    LogLevel,
    MissingRequiredFieldError,
    StructuredLogger,
)


@pytest.fixture
def lines():
    return []


@pytest.fixture
def node_logger(lines):
    return StructuredLogger(
        "quorum-monitor",
        config=LogConfig(default_node_id="shuffle-manager-2"),
        output_handler=lines.append,
    )


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CHAMPS OBLIGATOIRES
# ══════════════════════════════════════════════════════════════════════════════


class TestRequiredFields:
    """timestamp, level, correlation_id, node_id, message."""

    def test_implements_interface(self, node_logger):
        assert isinstance(node_logger, IStructuredLogger)

    def test_json_line_fields(self, node_logger, lines):
        node_logger.warn("Quorum lost", event="quorum_lost", ready=1, required=2)

        record = json.loads(lines[0])
        assert record["level"] == "WARN"
        assert record["node_id"] == "shuffle-manager-2"
        assert record["event"] == "quorum_lost"
        assert record["logger"] == "quorum-monitor"
        assert record["extra"] == {"ready": 1, "required": 2}
        assert record["timestamp"].endswith("Z")
        assert record["correlation_id"]

    def test_missing_node_raises(self):
        logger = StructuredLogger("bootstrap")
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            logger.info("starting")
        assert exc_info.value.field_name == "node_id"

    def test_empty_message_raises(self, node_logger):
        with pytest.raises(MissingRequiredFieldError):
            node_logger.info("")

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            StructuredLogger("  ")

    def test_explicit_node_overrides_default(self, node_logger):
        entry = node_logger.log(LogLevel.INFO, "joined", node_id="shuffle-worker-1")
        assert entry.node_id == "shuffle-worker-1"


# ══════════════════════════════════════════════════════════════════════════════
# TESTS NIVEAUX
# ══════════════════════════════════════════════════════════════════════════════


class TestLevels:
    """Filtrage et parsing des niveaux."""

    def test_below_min_level_filtered(self, node_logger, lines):
        assert node_logger.debug("cycle start") is None
        assert lines == []

    @pytest.mark.parametrize("name,level", [("debug", LogLevel.DEBUG), ("WARN", LogLevel.WARN), ("Critical", LogLevel.CRITICAL)])
    def test_parse_level(self, name, level):
        assert StructuredLogger.parse_level(name) is level

    def test_parse_invalid_level(self):
        with pytest.raises(InvalidLogLevelError):
            StructuredLogger.parse_level("verbose")

    def test_entries_by_level_and_event(self, node_logger):
        node_logger.info("ok", event="quorum_ok")
        node_logger.critical("lost", event="quorum_lost")

        assert [e.event for e in node_logger.get_entries_by_level(LogLevel.CRITICAL)] == ["quorum_lost"]
        assert len(node_logger.get_entries_by_event("quorum_ok")) == 1

        node_logger.clear_entries()
        assert node_logger.get_entries() == []

    def test_capture_bounded(self):
        logger = StructuredLogger("x", config=LogConfig(default_node_id="n", max_captured_entries=2))
        for i in range(5):
            logger.info(f"message {i}")
        assert [e.message for e in logger.get_entries()] == ["message 3", "message 4"]


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CONTEXTE
# ══════════════════════════════════════════════════════════════════════════════


class TestContext:
    """Un correlation_id par cycle, loggers enfants."""

    def test_with_context_shares_correlation(self, node_logger):
        log = node_logger.with_context()
        assert isinstance(log, ContextualLogger)

        first = log.info("cycle start")
        second = log.warn("cycle end")

        assert first.correlation_id == second.correlation_id == log.correlation_id
        assert len(node_logger.get_entries_by_correlation(log.correlation_id)) == 2

    def test_each_context_new_correlation(self, node_logger):
        assert node_logger.with_context().correlation_id != node_logger.with_context().correlation_id

    def test_child_inherits_node_and_output(self, node_logger, lines):
        child = node_logger.child("service-reconciler")
        entry = child.info("Workload restarted")

        assert entry.node_id == "shuffle-manager-2"
        assert entry.logger_name == "service-reconciler"
        assert len(lines) == 1

    def test_set_default_node(self):
        logger = StructuredLogger("bootstrap")
        logger.set_default_node("shuffle-manager-3")
        assert logger.info("Node role detected").node_id == "shuffle-manager-3"


# ══════════════════════════════════════════════════════════════════════════════
# TESTS MASQUAGE
# ══════════════════════════════════════════════════════════════════════════════


class TestMasking:
    """Secrets masqués dans message et extra."""

    def test_token_in_message_masked(self, node_logger, lines):
        node_logger.error("join failed: docker swarm join --token SWMTKN-1-abc-def 10.224.0.1:2377")
        assert "SWMTKN" not in lines[0]

    def test_sensitive_extra_masked(self, node_logger):
        entry = node_logger.info("tokens rotated", manager_token="SWMTKN-1-abc")
        assert entry.extra["manager_token"] == "***MASKED***"

    def test_masking_disabled(self):
        logger = StructuredLogger("x", config=LogConfig(default_node_id="n", mask_sensitive=False))
        assert logger.info("t", manager_token="abc").extra["manager_token"] == "abc"

    def test_extra_excluded(self):
        logger = StructuredLogger("x", config=LogConfig(default_node_id="n", include_extra=False))
        assert logger.info("t", workload="backend").extra == {}
