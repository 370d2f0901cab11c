"""
Submission service - the application-facing entry point.

Wires the adapter factory to the intelligence engine: submissions go out
through the resolved adapter, and outcomes reported later are learned in
the background so they never hold up or fail the caller.
"""

import logging
from typing import Dict, List, Optional

import httpx

from .adapters.base import (
    ConnectionCheck,
    PreparedApplication,
    ServicerConfig,
    StatusCheck,
    SubmissionResult,
    ValidationResult,
)
from .adapters.factory import ServicerAdapterFactory
from .adapters.mail import SmtpFactory
from .adapters.registry import AdapterRegistry
from .config import ServicerLinkConfig, get_default_config
from .errors import LearningError
from .intelligence.engine import LearnedInsights, ServicerIntelligenceData, ServicerIntelligenceEngine
from .models import Submission, SubmissionOutcome

logger = logging.getLogger(__name__)


class SubmissionService:
    """Facade over adapters and servicer intelligence.

    Example:
        service = SubmissionService()
        result = await service.submit("acme_bank", application)
        ...
        service.record_outcome(Submission.from_application(application, result), outcome)
    """

    def __init__(
        self,
        settings: Optional[ServicerLinkConfig] = None,
        engine: Optional[ServicerIntelligenceEngine] = None,
        registry: Optional[AdapterRegistry] = None,
        directory: Optional[Dict[str, ServicerConfig]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        smtp_factory: Optional[SmtpFactory] = None
    ):
        self.settings = settings if settings else get_default_config()
        self.engine = engine if engine else ServicerIntelligenceEngine(config=self.settings)
        self.factory = ServicerAdapterFactory(
            registry=registry,
            engine=self.engine,
            settings=self.settings,
            directory=directory,
            transport=transport,
            smtp_factory=smtp_factory,
        )

    async def validate(self, servicer_id: str, application: PreparedApplication) -> ValidationResult:
        adapter = await self.factory.get_adapter(servicer_id)
        return await adapter.validate(application)

    async def submit(self, servicer_id: str, application: PreparedApplication) -> SubmissionResult:
        """Submit an application to a servicer through its resolved adapter."""
        adapter = await self.factory.get_adapter(servicer_id)
        logger.info(
            f"Submitting case {application.case_id} to {servicer_id} "
            f"with {type(adapter).__name__}"
        )
        return await adapter.submit(application)

    async def check_status(self, servicer_id: str, tracking_number: str) -> StatusCheck:
        adapter = await self.factory.get_adapter(servicer_id)
        return await adapter.check_status(tracking_number)

    def record_outcome(self, submission: Submission, outcome: SubmissionOutcome):
        """Learn from a servicer's response without waiting for it.

        Returns the background task; learning failures are logged, never raised.
        """
        logger.info(
            f"Recording outcome {outcome.status.value} for submission {submission.id} "
            f"({submission.servicer_id})"
        )
        return self.engine.learn_in_background(submission, outcome)

    async def learn(self, submission: Submission, outcome: SubmissionOutcome) -> Optional[LearnedInsights]:
        """Learn from an outcome and wait for the result; None if learning failed."""
        try:
            return await self.engine.learn_from_submission(submission, outcome)
        except LearningError as e:
            logger.error(f"Learning from submission {submission.id} failed: {e}")
            return None

    async def recommendations(self, servicer_id: str) -> List[str]:
        return await self.engine.get_recommendations(servicer_id)

    async def intelligence(self, servicer_id: str) -> ServicerIntelligenceData:
        return await self.engine.get_intelligence(servicer_id)

    async def test_connection(self, servicer_id: str) -> ConnectionCheck:
        return await self.factory.test_adapter(servicer_id)

    async def servicer_config(self, servicer_id: str) -> ServicerConfig:
        return await self.factory.get_servicer_config(servicer_id)

    def registered_servicers(self) -> List[str]:
        return self.factory.registered_servicers()

    async def close(self) -> None:
        """Wait for outstanding background learning."""
        await self.engine.drain()
