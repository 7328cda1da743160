"""
Tests unitaires SensitiveMasker

Jetons de join et secrets jamais en clair dans les logs.
"""

import pytest

from swarm_sentinel.logging import ISensitiveMasker, SensitiveMasker

MASK = SensitiveMasker.MASK_VALUE


@pytest.fixture
def masker():
    return SensitiveMasker()


class TestSensitiveKeys:
    """Masquage par nom de clé."""

    def test_implements_interface(self, masker):
        assert isinstance(masker, ISensitiveMasker)

    @pytest.mark.parametrize("key", ["manager_token", "PASSWORD", "api_key", "Authorization", "db_secret"])
    def test_sensitive_keys(self, masker, key):
        assert masker.is_sensitive_key(key)

    @pytest.mark.parametrize("key", ["workload", "address", "", "epoch"])
    def test_regular_keys(self, masker, key):
        assert not masker.is_sensitive_key(key)

    def test_value_masked(self, masker):
        result = masker.mask({"worker_token": "SWMTKN-1-xyz", "address": "10.224.0.1"})
        assert result == {"worker_token": MASK, "address": "10.224.0.1"}

    def test_additional_patterns(self):
        masker = SensitiveMasker(additional_patterns=["nfs_export", "TOKEN"])
        assert masker.is_sensitive_key("nfs_export_options")
        assert masker.patterns.count("token") == 1

    def test_input_not_modified(self, masker):
        data = {"password": "hunter2"}
        masker.mask(data)
        assert data == {"password": "hunter2"}


class TestJoinTokens:
    """Jetons SWMTKN dans les chaînes libres."""

    def test_command_line_masked(self, masker):
        line = "docker swarm join --token SWMTKN-1-49nj1cmql0jkz5s954yi3oex3nedyz0fb0xx14ie39trti4wxv-8vxv8rssmk743ojnwacrr2e7c 10.224.0.1:2377"
        assert masker.mask_string(line) == f"docker swarm join --token {MASK} 10.224.0.1:2377"

    def test_nested_structures(self, masker):
        data = {
            "error": "join refused for SWMTKN-1-abc",
            "attempts": [{"stderr": "SWMTKN-1-def invalid"}, 3],
        }

        result = masker.mask(data)

        assert result["error"] == f"join refused for {MASK}"
        assert result["attempts"] == [{"stderr": f"{MASK} invalid"}, 3]

    def test_plain_text_unchanged(self, masker):
        assert masker.mask_string("quorum lost: 1/2 managers") == "quorum lost: 1/2 managers"

    def test_non_dict_returned_as_is(self, masker):
        assert masker.mask("SWMTKN-1-abc") == "SWMTKN-1-abc"
