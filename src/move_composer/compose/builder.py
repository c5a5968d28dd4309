from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from move_composer.compose.resolver import ArgumentResolver
from move_composer.compose.types import ResolvedCall, SignerToken, StepGraph
from move_composer.compose.validator import AbiValidator, ValidationReport
from move_composer.errors import EmptyGraphError, ValidationFailedError
from move_composer.interfaces import ScriptBuilder

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    transaction: Any
    report: ValidationReport
    resolved_calls: list[ResolvedCall] = field(default_factory=list)

    @property
    def warnings(self):
        return self.report.warnings


class AtomicBuilder:
    """
    Turn a validated graph into one transaction.

    A fresh ScriptBuilder is obtained from `builder_factory` per build, and only
    after validation reports no hard findings.
    """

    def __init__(self, validator: AbiValidator, builder_factory: Callable[[], ScriptBuilder]) -> None:
        self.validator = validator
        self.builder_factory = builder_factory

    async def build(
        self,
        graph: StepGraph,
        signer: SignerToken | None = None,
        *,
        fee_payer: bool = False,
    ) -> BuildResult:
        if len(graph) == 0:
            raise EmptyGraphError()

        report = await self.validator.validate(graph)
        if report.errors:
            logger.info(f"Build aborted: {len(report.errors)} hard finding(s)")
            raise ValidationFailedError(report.errors)

        resolver = ArgumentResolver(signer)
        script = self.builder_factory()
        calls: list[ResolvedCall] = []
        for step in graph:
            call = resolver.resolve_step(step)
            handles = await script.add_call(str(call.function_id), list(call.type_arguments), list(call.resolved_args))
            resolver.record_outputs(step.label, handles)
            calls.append(call)

        transaction = await script.finalize(fee_payer=fee_payer)
        logger.info(f"Built composed transaction: {' -> '.join(graph.labels)} (fee_payer={fee_payer})")
        return BuildResult(transaction=transaction, report=report, resolved_calls=calls)
