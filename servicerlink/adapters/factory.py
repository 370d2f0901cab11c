"""
Servicer adapter factory.

Resolves a servicer id to the adapter that should handle it: the
registered dedicated adapter when there is one, otherwise a Generic
adapter parameterised with whatever has been learned about the servicer.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

import httpx

from ..config import ServicerLinkConfig, get_default_config
from ..intelligence.engine import ServicerIntelligenceEngine
from .base import ConnectionCheck, IntegrationType, ServicerAdapter, ServicerConfig
from .builtin import build_default_registry
from .generic import GenericAdapter
from .mail import SmtpFactory
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)


class ServicerAdapterFactory:
    """Creates servicer adapters, falling back to learned intelligence.

    Registered adapters always win, even when intelligence exists for the
    same servicer. get_adapter() never raises because of the intelligence
    engine: if learned data can't be loaded, the Generic adapter is built
    with empty requirements.
    """

    def __init__(
        self,
        registry: Optional[AdapterRegistry] = None,
        engine: Optional[ServicerIntelligenceEngine] = None,
        settings: Optional[ServicerLinkConfig] = None,
        directory: Optional[Dict[str, ServicerConfig]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        smtp_factory: Optional[SmtpFactory] = None
    ):
        """
        Args:
            registry: Dedicated adapters (defaults to the built-in servicers)
            engine: Intelligence engine used for the Generic fallback
            settings: Policy and endpoint configuration
            directory: Known contact details (endpoint, channel, credentials)
                for servicers without a dedicated adapter, keyed by id
            transport: Optional httpx transport passed to created adapters
            smtp_factory: Optional SMTP client factory passed to created adapters
        """
        self.settings = settings if settings else get_default_config()
        self.registry = registry if registry is not None else build_default_registry(
            self.settings, transport, smtp_factory
        )
        self.engine = engine if engine else ServicerIntelligenceEngine(config=self.settings)
        self.directory = {
            AdapterRegistry.normalize(sid): config for sid, config in (directory or {}).items()
        }
        self._transport = transport
        self._smtp_factory = smtp_factory

    async def get_adapter(self, servicer_id: str) -> ServicerAdapter:
        """Get the adapter for a servicer, with intelligence-driven fallback."""
        adapter = self.registry.get(servicer_id)
        if adapter:
            logger.debug(f"Using specific adapter for {servicer_id}")
            return adapter

        logger.info(f"No specific adapter for {servicer_id}, using generic adapter with intelligence")

        try:
            requirements = await self._learned_requirements(servicer_id)
        except Exception as e:
            logger.error(f"Failed to load intelligence for {servicer_id}: {e}")
            requirements = {}

        return GenericAdapter(
            self._base_config(servicer_id, requirements),
            self.settings,
            self._transport,
            self._smtp_factory
        )

    async def _learned_requirements(self, servicer_id: str) -> Dict[str, Any]:
        intelligence = await self.engine.get_intelligence(servicer_id)
        learned = intelligence.requirements

        requirements: Dict[str, Any] = {
            "recommendations": intelligence.recommendations,
            "success_rate": intelligence.success_rate,
            "learned": True,
        }

        order_confidence = learned.get("document_order_confidence", 0.0)
        if order_confidence > self.engine.config.recommendation_threshold:
            requirements["document_order"] = learned["document_order"]
        if "best_submission_time" in learned:
            requirements["best_submission_time"] = learned["best_submission_time"]
        if "common_issues" in learned:
            requirements["common_issues"] = learned["common_issues"]

        return requirements

    def _base_config(self, servicer_id: str, requirements: Dict[str, Any]) -> ServicerConfig:
        known = self.directory.get(AdapterRegistry.normalize(servicer_id))
        if known:
            return replace(known, requirements={**known.requirements, **requirements})
        return ServicerConfig(
            id=servicer_id,
            name=servicer_id,
            type=IntegrationType.PORTAL,
            requirements=requirements,
        )

    def register_adapter(self, servicer_id: str, adapter: ServicerAdapter) -> None:
        """Register (or replace) a dedicated adapter at runtime."""
        self.registry.register(servicer_id, adapter, replace=True)

    def registered_servicers(self) -> list[str]:
        return self.registry.list_servicers()

    async def get_servicer_config(self, servicer_id: str) -> ServicerConfig:
        adapter = await self.get_adapter(servicer_id)
        return adapter.get_config()

    async def test_adapter(self, servicer_id: str) -> ConnectionCheck:
        """Test connectivity for a servicer's adapter; never raises."""
        try:
            adapter = await self.get_adapter(servicer_id)
            return await adapter.test_connection()
        except Exception as e:
            logger.error(f"Connection test for {servicer_id} failed: {e}")
            return ConnectionCheck(False, str(e))
