"""
Tests for ServicerLinkConfig.
"""

import pytest

from servicerlink.config import ServicerLinkConfig


class TestDefaults:
    """Default policy values"""

    def test_learning_defaults(self):
        config = ServicerLinkConfig()
        assert config.confidence_step == 0.1
        assert config.confidence_ceiling == 0.99
        assert config.recommendation_threshold == 0.8
        assert config.evidence_retention == 50

    def test_transport_defaults(self):
        config = ServicerLinkConfig()
        assert config.max_attempts == 3
        assert config.retry_backoff == 1.5
        assert config.portal_session_timeout == 900.0

    def test_defaults_validate(self):
        ServicerLinkConfig().validate()


class TestFromEnv:
    """Environment loading"""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SERVICERLINK_DB_PATH", "/tmp/intel.db")
        monkeypatch.setenv("SERVICERLINK_CONFIDENCE_STEP", "0.2")
        monkeypatch.setenv("SERVICERLINK_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("CHASE_API_KEY", "secret")
        monkeypatch.setenv("SMTP_USE_TLS", "0")

        config = ServicerLinkConfig.from_env()

        assert config.db_path == "/tmp/intel.db"
        assert config.confidence_step == 0.2
        assert config.max_attempts == 5
        assert config.chase_api_key == "secret"
        assert config.smtp_use_tls is False

    def test_cc_addresses_split(self, monkeypatch):
        monkeypatch.setenv("WF_CC_EMAIL", "a@wellsfargo.com, b@wellsfargo.com,")
        config = ServicerLinkConfig.from_env()
        assert config.cc_addresses() == ["a@wellsfargo.com", "b@wellsfargo.com"]


class TestValidation:
    """Range checks"""

    @pytest.mark.parametrize("field,value", [
        ("confidence_step", 0.0),
        ("confidence_step", 1.5),
        ("confidence_ceiling", 1.1),
        ("recommendation_threshold", -0.1),
        ("evidence_retention", 0),
        ("max_attempts", 0),
        ("retry_backoff", -1.0),
        ("request_timeout", 0.0),
        ("portal_session_timeout", 0.0),
    ])
    def test_invalid_values_rejected(self, field, value):
        config = ServicerLinkConfig(**{field: value})
        with pytest.raises(ValueError, match=field):
            config.validate()


def test_summary_mentions_credentials_state():
    summary = ServicerLinkConfig(chase_api_key="k").get_summary()
    assert "servicerlink Configuration Summary" in summary
    assert "key set" in summary
    assert "credentials not set" in summary
