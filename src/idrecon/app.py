"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import ExitStack, closing
from logging import getLogger
from typing import TYPE_CHECKING

from idrecon.adapters.scim import ScimClient, ScimConnector
from idrecon.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyReconciliationUnitOfWork,
    is_started,
    startup,
)
from idrecon.adapters.toml_provider import TomlResourceProvider
from idrecon.config.errors import ConfigurationError
from idrecon.config.reconciliation import get_reconciliation_config
from idrecon.config.scim import DEFAULT_SCIM_PAGE_SIZE, get_scim_config
from idrecon.domain.model import TraceLevel
from idrecon.domain.ports import ReconciliationUnitOfWork
from idrecon.domain.reconciliation import EngineError, PullOrchestrator, PushOrchestrator

if TYPE_CHECKING:
    from collections.abc import Iterable

    from idrecon.domain.model import EntityKind, ResourceDefinition, SearchPredicate
    from idrecon.domain.ports import ConnectorFacade, ResourceProvider
    from idrecon.domain.reconciliation import RunReport

type UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]

log = getLogger(__name__)


def _option[T](resource: ResourceDefinition, name: str, expected: type[T]) -> T | None:
    options = resource.connector.options if resource.connector else {}
    value = options.get(name)
    if value is not None and not isinstance(value, expected):
        raise ConfigurationError(
            f"Connector option {name!r} of {resource.key} must be {expected.__name__}"
        )
    return value


def build_connector(resource: ResourceDefinition) -> ScimConnector:
    """Instantiate the connector declared by ``resource``."""

    settings = resource.connector
    if settings is None:
        raise ConfigurationError(f"Resource {resource.key} declares no connector")

    match settings.type:
        case "scim":
            base_url = _option(resource, "base_url", str)
            token_env = _option(resource, "token_env", str)
            if base_url is None or token_env is None:
                raise ConfigurationError(
                    f"SCIM connector of {resource.key} needs base_url and token_env"
                )
            config = get_scim_config(
                name=resource.key,
                base_url=base_url,
                token_env=token_env,
                page_size=_option(resource, "page_size", int) or DEFAULT_SCIM_PAGE_SIZE,
                max_calls_per_second=_option(resource, "max_calls_per_second", int),
            )
            return ScimConnector(client=ScimClient(config=config), page_size=config.page_size)
        case other:
            raise ConfigurationError(f"Unsupported connector type {other!r} for {resource.key}")


def _default_trace_level() -> TraceLevel:
    return TraceLevel(get_reconciliation_config().default_trace_level.lower())


def _unit_of_work_factory(factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if factory is not None:
        return factory
    if not is_started():
        startup()
    return SqlAlchemyReconciliationUnitOfWork


def _log_report(report: RunReport | None) -> None:
    if report is None:
        return
    rendered = report.render()
    if rendered:
        log.info("Run report for %s (%s):\n%s", report.resource, report.direction, rendered)


def pull_resource(
    key: str,
    *,
    full_reconciliation: bool = False,
    dry_run: bool = False,
    provider: ResourceProvider | None = None,
    connector: ConnectorFacade | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> RunReport:
    """Pull changes of resource ``key`` into the internal store.

    The unit of work is committed even when the run fails part way, so
    records processed before the failure are kept; cursors are only
    advanced by successful runs. A connector built here is closed on return.
    """

    trace_level = _default_trace_level()
    effective_provider = provider or TomlResourceProvider(
        get_reconciliation_config().resources_file,
        default_trace_level=trace_level,
    )

    with ExitStack() as stack:
        effective_connector = connector or stack.enter_context(
            closing(build_connector(effective_provider.get_resource(key)))
        )
        effective_uow = _unit_of_work_factory(unit_of_work_factory)
        uow = stack.enter_context(effective_uow())
        orchestrator = PullOrchestrator(
            provider=effective_provider,
            store=uow.repositories.store,
            connector=effective_connector,
            cursors=uow.repositories.cursors,
            default_trace_level=trace_level,
        )
        try:
            report = orchestrator.run(
                key,
                full_reconciliation=full_reconciliation,
                dry_run=dry_run,
            )
        except EngineError as exc:
            uow.commit()
            _log_report(exc.report)
            raise
        uow.commit()

    _log_report(report)
    return report


def push_resource(
    key: str,
    *,
    kinds: Iterable[EntityKind] | None = None,
    query: SearchPredicate | None = None,
    dry_run: bool = False,
    provider: ResourceProvider | None = None,
    connector: ConnectorFacade | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> RunReport:
    """Push internal entities of the selected kinds to resource ``key``."""

    config = get_reconciliation_config()
    trace_level = TraceLevel(config.default_trace_level.lower())
    effective_provider = provider or TomlResourceProvider(
        config.resources_file,
        default_trace_level=trace_level,
    )

    with ExitStack() as stack:
        effective_connector = connector or stack.enter_context(
            closing(build_connector(effective_provider.get_resource(key)))
        )
        effective_uow = _unit_of_work_factory(unit_of_work_factory)
        uow = stack.enter_context(effective_uow())
        orchestrator = PushOrchestrator(
            provider=effective_provider,
            store=uow.repositories.store,
            connector=effective_connector,
            page_size=config.push_page_size,
            default_trace_level=trace_level,
        )
        try:
            report = orchestrator.run(key, kinds=kinds, query=query, dry_run=dry_run)
        except EngineError as exc:
            uow.commit()
            _log_report(exc.report)
            raise
        uow.commit()

    _log_report(report)
    return report
