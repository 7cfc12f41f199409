"""Push orchestrator: propagate internal entities to an external resource."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final, NoReturn

from idrecon.config.errors import ConfigurationError
from idrecon.domain.model import PULL_ORDER, Direction, Operation, TraceLevel, kind_spec
from idrecon.domain.ports import AuthorizationContext, ConnectorException, StoreError

from .dispatch import OutboundDispatcher
from .errors import EngineError
from .mapping import MappingResolver
from .matrix import decide_push
from .report import Outcome, OutcomeStatus, ReportBuilder, RunReport

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from idrecon.domain.model import EntityKind, InternalEntity, ResourceDefinition, SearchPredicate
    from idrecon.domain.ports import ConnectorFacade, InternalStore, ResourceProvider

    from .matrix import Decision

log = getLogger(__name__)

DEFAULT_PAGE_SIZE: Final[int] = 1000


class PushOrchestrator:
    """Pages the internal population and reconciles each entity against the connector.

    Processing is sequential. A failing entity is recorded and the loop moves on;
    store or connector failures while paging end the run with :class:`EngineError`.
    """

    def __init__(
        self,
        *,
        provider: ResourceProvider,
        store: InternalStore,
        connector: ConnectorFacade,
        context: AuthorizationContext | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        default_trace_level: TraceLevel = TraceLevel.FAILURES,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.provider = provider
        self.store = store
        self.connector = connector
        self.context = context or AuthorizationContext.unrestricted()
        self.page_size = page_size
        self.default_trace_level = default_trace_level

    def run(
        self,
        resource_key: str,
        *,
        kinds: Iterable[EntityKind] | None = None,
        query: SearchPredicate | None = None,
        dry_run: bool = False,
    ) -> RunReport:
        builder = ReportBuilder(
            resource=resource_key,
            direction=Direction.PUSH,
            dry_run=dry_run,
            trace_level=self.default_trace_level,
        )
        log.info(
            "Starting push: resource=%s, query=%s, dry_run=%s, page_size=%s",
            resource_key,
            query,
            dry_run,
            self.page_size,
        )
        try:
            resource = self.provider.get_resource(resource_key)
        except (ConfigurationError, OSError) as exc:
            self._fail(builder, f"Resource {resource_key} is unavailable: {exc}", exc)
        builder.trace_level = resource.trace_level

        context = self.context.fork()
        dispatcher = OutboundDispatcher(
            store=self.store,
            connector=self.connector,
            resource=resource.key,
            context=context,
        )
        wanted = set(kinds) if kinds is not None else set(PULL_ORDER)

        for kind in PULL_ORDER:
            provision = resource.provision_for(kind)
            if kind not in wanted or provision is None:
                continue
            resolver = MappingResolver(
                provision.mapping, kind_spec(kind, resource.attribute_schemas.get(kind))
            )
            in_scope: set[str] = set()
            try:
                for entity in self._pages(kind, query, context):
                    in_scope.add(entity.id)
                    builder.record(
                        self._push_one(resource, kind, entity, resolver, dispatcher, dry_run)
                    )
                if query is not None and resource.push_policy.deprovision_out_of_scope:
                    linked = [
                        entity
                        for entity in self._linked_pages(kind, resource.key, context)
                        if entity.id not in in_scope
                    ]
                    for entity in linked:
                        builder.record(
                            self._push_one(
                                resource,
                                kind,
                                entity,
                                resolver,
                                dispatcher,
                                dry_run,
                                in_scope=False,
                            )
                        )
            except StoreError as exc:
                self._fail(builder, f"Paging {kind} failed: {exc}", exc)

        report = builder.finalize()
        log.info(
            "Finished push: resource=%s, outcomes=%s, failures=%s",
            resource_key,
            len(report.outcomes),
            len(report.failures),
        )
        return report

    def _pages(
        self,
        kind: EntityKind,
        query: SearchPredicate | None,
        context: AuthorizationContext,
    ) -> Iterator[InternalEntity]:
        page = 1
        while True:
            entities = self.store.page(kind, query, page=page, size=self.page_size, context=context)
            log.debug("Push page %s of %s: %s entities", page, kind, len(entities))
            yield from entities
            if len(entities) < self.page_size:
                return
            page += 1

    def _linked_pages(
        self,
        kind: EntityKind,
        resource: str,
        context: AuthorizationContext,
    ) -> Iterator[InternalEntity]:
        page = 1
        while True:
            entities = self.store.page_linked(
                kind, resource, page=page, size=self.page_size, context=context
            )
            yield from entities
            if len(entities) < self.page_size:
                return
            page += 1

    def _push_one(
        self,
        resource: ResourceDefinition,
        kind: EntityKind,
        entity: InternalEntity,
        resolver: MappingResolver,
        dispatcher: OutboundDispatcher,
        dry_run: bool,
        *,
        in_scope: bool = True,
    ) -> Outcome:
        decision: Decision | None = None
        uid = entity.name
        try:
            record = resolver.build_outbound_record(entity)
            uid = record.uid
            external = self.connector.fetch(kind, record.uid)
            decision = decide_push(
                external=external,
                linked=entity.is_linked(resource.key),
                policy=resource.push_policy,
                target_id=entity.id,
                in_scope=in_scope,
                dry_run=dry_run,
            )
            log.debug("Decided %s for %s %s", decision.operation, kind, entity.id)
            with self.store.savepoint():
                return dispatcher.apply(kind, entity, record, external, decision)
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, ConnectorException):
                log.error("Connector failed pushing %s %s: %s", kind, entity.id, exc)
            else:
                log.error("Failed to push %s %s", kind, entity.id, exc_info=True)
            return Outcome(
                kind=kind,
                uid=uid,
                name=entity.name,
                operation=decision.operation if decision is not None else Operation.NONE,
                status=OutcomeStatus.FAILURE,
                message=str(exc) or type(exc).__name__,
                internal_id=entity.id,
                dry_run=dry_run,
            )

    @staticmethod
    def _fail(builder: ReportBuilder, message: str, cause: BaseException) -> NoReturn:
        report = builder.finalize(error=message)
        log.error("Push of %s failed: %s", builder.resource, message)
        raise EngineError(message, report=report) from cause
