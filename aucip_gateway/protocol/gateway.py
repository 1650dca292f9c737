"""
Transport-neutral protocol facade.

``AucipGateway`` wires the gateway core together (registry, authorization,
validation, execution engine, job manager, batch coordinator, subscriptions)
and exposes one coroutine per protocol operation. A transport binding (HTTP
routes, a message queue consumer, tests) passes in the raw ``Authorization``
header value and the decoded JSON body and returns the ``ProtocolResponse``
as-is.

Error handling mirrors a global exception handler: ``GatewayError`` becomes
an error envelope with the error's status code; anything else is logged with
its traceback and answered with a 500 ``internal_error`` envelope carrying an
error id that can be matched against the logs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import uuid4

import httpx

from ..auth.authentication import Authenticator, authenticate_header
from ..auth.authorizer import Authorizer
from ..auth.provider import PermissionProvider
from ..batch.coordinator import BatchCoordinator
from ..capabilities.registry import CapabilityRegistry
from ..core.config import Settings
from ..core.config import settings as default_settings
from ..core.logging_config import get_logger
from ..errors import BatchFailed, GatewayError
from ..events import EventBus
from ..jobs.manager import JobManager
from ..runtime.engine import ExecutionEngine
from ..runtime.models import EngineDeps
from ..schemas.domain import EventType, JobHandle, Principal
from ..subscriptions.dispatcher import WebhookDispatcher
from ..subscriptions.manager import SubscriptionManager
from ..validation.validator import SchemaValidator
from . import envelopes
from .payloads import BatchPayload, ExecutePayload, SubscribePayload, parse_payload

logger = get_logger(__name__)

_ALL_EVENTS = [e.value for e in EventType]


@dataclass(frozen=True)
class ProtocolResponse:
    """Status code plus JSON-serializable body."""

    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class AucipGateway:
    """Protocol operations over a frozen capability registry.

    Args:
        registry: Populated capability registry. It is frozen on construction.
        authenticator: Verifies bearer credentials and resolves the ``Principal``.
        permissions: A ``PermissionProvider`` or a ready ``Authorizer``.
        settings: Gateway settings; defaults to the module-level settings.
        http_client: Optional ``httpx.AsyncClient`` used for webhook delivery.
        clock: Optional "now" source shared by jobs and subscriptions.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        authenticator: Authenticator,
        permissions: Union[PermissionProvider, Authorizer],
        *,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings or default_settings
        registry.freeze()
        self.registry = registry
        self.authenticator = authenticator
        self.authorizer = permissions if isinstance(permissions, Authorizer) else Authorizer(permissions)

        clock_kw: Dict[str, Any] = {"clock": clock} if clock is not None else {}
        webhooks = self.settings.webhooks
        subs_cfg = self.settings.subscriptions
        jobs_cfg = self.settings.jobs

        self.dispatcher = WebhookDispatcher(
            client=http_client,
            timeout=webhooks.timeout_seconds,
            max_attempts=webhooks.max_attempts,
            backoff_initial=webhooks.backoff_initial,
            backoff_factor=webhooks.backoff_factor,
            backoff_max=webhooks.backoff_max,
        )
        self.subscriptions = SubscriptionManager(
            registry,
            self.dispatcher,
            default_duration_seconds=subs_cfg.default_seconds,
            max_duration_seconds=subs_cfg.max_seconds,
            allowed_schemes=subs_cfg.allowed_callback_schemes,
            **clock_kw,
        )
        self.events = EventBus([self.subscriptions])
        self.jobs = JobManager(
            timeout_seconds=jobs_cfg.timeout_seconds,
            retention_seconds=jobs_cfg.retention_seconds,
            events=self.events,
            **clock_kw,
        )
        self.engine = ExecutionEngine(
            deps=EngineDeps(
                registry=registry,
                authorizer=self.authorizer,
                validator=SchemaValidator(strict=self.settings.strict_schema),
                jobs=self.jobs,
                events=self.events,
            ),
            status_prefix=self.settings.api_prefix,
        )
        self.batches = BatchCoordinator(self.engine, max_concurrency=self.settings.batch_max_concurrency)
        logger.info(
            "%s %s ready with %d capabilities (AUCIP %s)",
            self.settings.app_name,
            self.settings.app_version,
            len(registry),
            self.settings.protocol_version,
        )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    async def discover(self) -> ProtocolResponse:
        """Capability catalog. No authentication required."""
        return await self._guard("discover", self._discover)

    async def execute(self, authorization: Optional[str], capability_id: str, payload: Any = None) -> ProtocolResponse:
        return await self._guard("execute", lambda: self._execute(authorization, capability_id, payload))

    async def job_status(self, authorization: Optional[str], job_id: str) -> ProtocolResponse:
        return await self._guard("job_status", lambda: self._job_status(authorization, job_id))

    async def batch(self, authorization: Optional[str], payload: Any = None) -> ProtocolResponse:
        return await self._guard("batch", lambda: self._batch(authorization, payload))

    async def subscribe(self, authorization: Optional[str], payload: Any = None) -> ProtocolResponse:
        return await self._guard("subscribe", lambda: self._subscribe(authorization, payload))

    async def unsubscribe(self, authorization: Optional[str], subscription_id: str) -> ProtocolResponse:
        return await self._guard("unsubscribe", lambda: self._unsubscribe(authorization, subscription_id))

    async def aclose(self) -> None:
        """Cancel running jobs, finish pending webhook deliveries and close the HTTP client."""
        await self.jobs.shutdown()
        await self.subscriptions.aclose()

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------

    def _principal(self, authorization: Optional[str]) -> Principal:
        return authenticate_header(self.authenticator, authorization)

    async def _discover(self) -> ProtocolResponse:
        return ProtocolResponse(
            200,
            {
                "capabilities": [d.to_wire() for d in self.registry.list()],
                "metadata": self.settings.discovery_metadata(),
            },
        )

    async def _execute(self, authorization: Optional[str], capability_id: str, payload: Any) -> ProtocolResponse:
        principal = self._principal(authorization)
        body = parse_payload(ExecutePayload, payload)
        res = await self.engine.invoke(principal, body.to_request(capability_id))
        if isinstance(res, JobHandle):
            return ProtocolResponse(202, envelopes.accepted_envelope(res))
        return ProtocolResponse(200, envelopes.sync_envelope(res))

    async def _job_status(self, authorization: Optional[str], job_id: str) -> ProtocolResponse:
        principal = self._principal(authorization)
        job = await self.jobs.status(job_id, owner=principal.subject)
        return ProtocolResponse(200, envelopes.job_envelope(job))

    async def _batch(self, authorization: Optional[str], payload: Any) -> ProtocolResponse:
        principal = self._principal(authorization)
        body = parse_payload(BatchPayload, payload, message="Operations must be an array")
        try:
            outcomes = await self.batches.run(principal, body.to_request())
        except BatchFailed as e:
            return ProtocolResponse(e.status_code, envelopes.batch_failed_envelope(e, e.partial_results))
        return ProtocolResponse(200, envelopes.batch_envelope(outcomes))

    async def _subscribe(self, authorization: Optional[str], payload: Any) -> ProtocolResponse:
        principal = self._principal(authorization)
        body = parse_payload(SubscribePayload, payload)
        sub = self.subscriptions.subscribe(
            principal,
            body.capabilities,
            body.events if body.events is not None else list(_ALL_EVENTS),
            body.callback,
            body.duration,
        )
        return ProtocolResponse(200, envelopes.subscription_envelope(sub))

    async def _unsubscribe(self, authorization: Optional[str], subscription_id: str) -> ProtocolResponse:
        principal = self._principal(authorization)
        self.subscriptions.unsubscribe(principal, subscription_id)
        return ProtocolResponse(200, envelopes.unsubscribed_envelope(subscription_id))

    async def _guard(self, operation: str, call: Callable[[], Awaitable[ProtocolResponse]]) -> ProtocolResponse:
        try:
            return await call()
        except GatewayError as e:
            logger.debug("%s rejected: %s (%s)", operation, e.code, e.message)
            return ProtocolResponse(e.status_code, envelopes.error_envelope(e))
        except Exception as exc:
            error_id = uuid4().hex
            logger.error(
                "Unhandled exception [%s] in %s: %s",
                error_id,
                operation,
                exc,
                exc_info=True,
                extra={"error_id": error_id, "operation": operation, "error_type": type(exc).__name__},
            )
            return ProtocolResponse(500, envelopes.internal_error_envelope(error_id, type(exc).__name__))
