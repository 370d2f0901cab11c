"""
Tests for the adapter registry and factory.

Copyright (c) 2025 Graziano Labs Corp.
"""

import pytest

from servicerlink.adapters.api import ApiAdapter
from servicerlink.adapters.base import IntegrationType, ServicerConfig, SubmissionStatus
from servicerlink.adapters.builtin import build_default_registry, chase_config
from servicerlink.adapters.factory import ServicerAdapterFactory
from servicerlink.adapters.generic import GenericAdapter
from servicerlink.adapters.mail import EmailAdapter
from servicerlink.adapters.portal import PortalAdapter
from servicerlink.adapters.registry import AdapterRegistry
from servicerlink.intelligence.engine import ServicerIntelligenceEngine
from servicerlink.storage.sqlite import SQLitePatternStore


class BrokenEngine:
    """Intelligence engine whose reads always fail."""

    async def get_recommendations(self, servicer_id):
        raise RuntimeError("intelligence unavailable")

    async def get_success_rate(self, servicer_id):
        raise RuntimeError("intelligence unavailable")

    async def get_intelligence(self, servicer_id):
        raise RuntimeError("intelligence unavailable")


class CountingStore(SQLitePatternStore):
    """Counts record reads."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.reads = 0

    async def list_records(self, servicer_id):
        self.reads += 1
        return await super().list_records(servicer_id)


class ExplodingAdapter(ApiAdapter):
    async def test_connection(self):
        raise RuntimeError("unexpected")


@pytest.fixture
def factory(settings, engine):
    return ServicerAdapterFactory(build_default_registry(settings), engine, settings)


# ============================================================================
# Registry
# ============================================================================

def test_register_and_get(settings):
    """Register adapter and retrieve it case-insensitively."""
    reg = AdapterRegistry()
    adapter = ApiAdapter(chase_config(settings), settings)
    reg.register("Chase", adapter)

    assert reg.get("chase") is adapter
    assert reg.get(" CHASE ") is adapter
    assert "chase" in reg
    assert len(reg) == 1


def test_register_duplicate(settings):
    """Registering the same servicer twice raises ValueError."""
    reg = AdapterRegistry()
    reg.register("chase", ApiAdapter(chase_config(settings), settings))

    with pytest.raises(ValueError, match="already registered"):
        reg.register("CHASE", ApiAdapter(chase_config(settings), settings))


def test_register_replace(settings):
    reg = AdapterRegistry()
    first = ApiAdapter(chase_config(settings), settings)
    second = ApiAdapter(chase_config(settings), settings)
    reg.register("chase", first)
    reg.register("chase", second, replace=True)

    assert reg.get("chase") is second


def test_unregister(settings):
    reg = AdapterRegistry()
    reg.register("chase", ApiAdapter(chase_config(settings), settings))
    reg.unregister("Chase")

    assert reg.get("chase") is None
    with pytest.raises(KeyError, match="not registered"):
        reg.unregister("chase")


def test_get_metadata(settings):
    """Metadata describes the registered adapter."""
    reg = build_default_registry(settings)
    meta = reg.get_metadata("bofa")

    assert meta["id"] == "bofa"
    assert meta["name"] == "Bank of America"
    assert meta["type"] == "portal"
    assert meta["adapter"] == "PortalAdapter"
    assert "registered_at" in meta


def test_default_registry_contents(settings):
    reg = build_default_registry(settings)

    assert reg.list_servicers() == ["chase", "bofa", "wells_fargo"]
    assert isinstance(reg.get("wells_fargo"), EmailAdapter)
    assert [m["id"] for m in reg.list_metadata()] == ["chase", "bofa", "wells_fargo"]


def test_get_metadata_not_found():
    with pytest.raises(KeyError, match="not registered"):
        AdapterRegistry().get_metadata("nobody")


# ============================================================================
# Factory
# ============================================================================

class TestFactory:
    """ServicerAdapterFactory.get_adapter()"""

    @pytest.mark.asyncio
    async def test_registered_lookup_is_case_insensitive(self, factory):
        adapters = [await factory.get_adapter(sid) for sid in ("chase", "Chase", "CHASE")]

        assert all(isinstance(a, ApiAdapter) for a in adapters)
        assert adapters[0] is adapters[1] is adapters[2]
        assert isinstance(await factory.get_adapter("bofa"), PortalAdapter)

    @pytest.mark.asyncio
    async def test_registered_adapter_wins_over_intelligence(self, factory, engine, make_submission):
        await engine.learn_from_submission(*make_submission(servicer_id="chase"))

        adapter = await factory.get_adapter("chase")

        assert isinstance(adapter, ApiAdapter)
        assert not isinstance(adapter, GenericAdapter)

    @pytest.mark.asyncio
    async def test_unknown_servicer_gets_generic_with_intelligence(self, factory, engine, make_submission):
        await engine.learn_from_submission(*make_submission())

        adapter = await factory.get_adapter("acme_bank")

        assert isinstance(adapter, GenericAdapter)
        requirements = adapter.get_requirements()
        assert requirements["learned"] is True
        assert requirements["success_rate"] == 1.0
        assert requirements["document_order"] == ["hardship_letter", "bank_statement"]
        assert requirements["best_submission_time"]["day_name"] == "Monday"
        assert "Current success rate with this servicer: 100.0%" in requirements["recommendations"]
        assert adapter.get_config().type is IntegrationType.PORTAL

    @pytest.mark.asyncio
    async def test_unknown_servicer_without_history(self, factory):
        adapter = await factory.get_adapter("acme_bank")

        assert isinstance(adapter, GenericAdapter)
        requirements = adapter.get_requirements()
        assert requirements["recommendations"] == []
        assert "document_order" not in requirements

    @pytest.mark.asyncio
    async def test_learning_under_mixed_case_id_is_visible(self, factory, engine, make_submission):
        await engine.learn_from_submission(*make_submission(servicer_id="Acme_Bank"))

        adapter = await factory.get_adapter("acme_bank")

        requirements = adapter.get_requirements()
        assert requirements["success_rate"] == 1.0
        assert requirements["document_order"] == ["hardship_letter", "bank_statement"]

    @pytest.mark.asyncio
    async def test_generic_lookup_reads_records_once(self, temp_db, settings, make_submission):
        store = CountingStore(temp_db)
        engine = ServicerIntelligenceEngine(store=store, config=settings)
        await engine.learn_from_submission(*make_submission())
        factory = ServicerAdapterFactory(build_default_registry(settings), engine, settings)
        store.reads = 0

        adapter = await factory.get_adapter("acme_bank")

        assert store.reads == 1
        assert "Current success rate with this servicer: 100.0%" in adapter.get_requirements()["recommendations"]

    @pytest.mark.asyncio
    async def test_engine_failure_falls_back_to_empty_requirements(self, settings):
        factory = ServicerAdapterFactory(build_default_registry(settings), BrokenEngine(), settings)

        adapter = await factory.get_adapter("acme_bank")

        assert isinstance(adapter, GenericAdapter)
        assert adapter.get_requirements() == {}

    @pytest.mark.asyncio
    async def test_generic_without_endpoint_reports_configuration_error(self, factory, make_application):
        adapter = await factory.get_adapter("acme_bank")
        result = await adapter.submit(make_application())

        assert result.status is SubmissionStatus.CONFIGURATION_ERROR

    @pytest.mark.asyncio
    async def test_directory_supplies_channel(self, settings, engine):
        directory = {
            "Acme_Bank": ServicerConfig(
                id="acme_bank",
                name="Acme Bank",
                type=IntegrationType.EMAIL,
                endpoint="lossmit@acme.example",
                requirements={"max_attachments": 5},
            )
        }
        factory = ServicerAdapterFactory(build_default_registry(settings), engine, settings, directory)

        adapter = await factory.get_adapter("acme_bank")

        config = adapter.get_config()
        assert config.type is IntegrationType.EMAIL
        assert config.endpoint == "lossmit@acme.example"
        assert config.requirements["max_attachments"] == 5
        assert config.requirements["learned"] is True

    @pytest.mark.asyncio
    async def test_register_adapter_at_runtime(self, factory, settings):
        config = ServicerConfig(id="acme_bank", name="Acme Bank", type=IntegrationType.API,
                                endpoint="https://acme.example/api")
        adapter = ApiAdapter(config, settings)

        factory.register_adapter("ACME_BANK", adapter)

        assert await factory.get_adapter("acme_bank") is adapter
        assert "acme_bank" in factory.registered_servicers()

    @pytest.mark.asyncio
    async def test_get_servicer_config(self, factory):
        config = await factory.get_servicer_config("wells_fargo")
        assert config.name == "Wells Fargo"

    @pytest.mark.asyncio
    async def test_test_adapter_never_raises(self, factory, settings):
        factory.register_adapter("chase", ExplodingAdapter(chase_config(settings), settings))

        check = await factory.test_adapter("chase")

        assert not check.success
        assert check.message == "unexpected"
