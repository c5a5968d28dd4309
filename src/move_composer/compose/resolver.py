"""
Argument resolution for step graphs.

Walks steps in declaration order and turns each StepArg into something the
script builder accepts: the signer token, a literal, or an output handle of an
earlier call. Output handles of a step only exist once that step's call has
been added, so a ref to a later (or the same) step is reported as unknown.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from move_composer.compose.types import (
    LiteralArg,
    OutputHandle,
    RefArg,
    RefMode,
    ResolvedArg,
    ResolvedCall,
    SignerArg,
    SignerToken,
    Step,
    StepArg,
    StepGraph,
    decode_literal,
)
from move_composer.errors import HandleAlreadyMovedError, ReturnIndexOutOfBounds, UnknownStepReference

logger = logging.getLogger(__name__)


class ArgumentResolver:
    """
    Stateful resolver for one graph.

    Each step's return handles are recorded under its label once the call is
    added. A `move` ref takes the original handle and marks `(label, index)` as
    consumed; later refs of any mode to a consumed output fail.
    """

    def __init__(self, signer: SignerToken | None = None) -> None:
        self.signer = signer if signer is not None else SignerToken()
        self._outputs: dict[str, list[OutputHandle]] = {}
        # (label, return_index) -> label of the step that moved it
        self._moved_by: dict[tuple[str, int], str] = {}

    @property
    def consumed(self) -> frozenset[tuple[str, int]]:
        return frozenset(self._moved_by)

    @property
    def recorded_labels(self) -> list[str]:
        return list(self._outputs)

    def record_outputs(self, label: str, handles: list[OutputHandle]) -> None:
        self._outputs[label] = list(handles)

    def remaining_outputs(self, label: str) -> list[int]:
        """Return indices of `label`'s outputs that have not been moved yet."""
        handles = self._outputs.get(label, [])
        return [i for i in range(len(handles)) if (label, i) not in self._moved_by]

    def resolve_arg(self, arg: StepArg, *, referenced_by: str) -> ResolvedArg:
        if isinstance(arg, SignerArg):
            return self.signer
        if isinstance(arg, LiteralArg):
            return decode_literal(arg.value)
        if isinstance(arg, RefArg):
            return self._resolve_ref(arg, referenced_by=referenced_by)
        raise TypeError(f"Unsupported step argument: {arg!r}")

    def _resolve_ref(self, arg: RefArg, *, referenced_by: str) -> OutputHandle:
        handles = self._outputs.get(arg.step)
        if handles is None:
            raise UnknownStepReference(arg.step, referenced_by, self.recorded_labels)
        if arg.return_index >= len(handles):
            raise ReturnIndexOutOfBounds(arg.step, arg.return_index, len(handles), referenced_by)

        key = (arg.step, arg.return_index)
        moved_by = self._moved_by.get(key)
        if moved_by is not None:
            raise HandleAlreadyMovedError(arg.step, arg.return_index, moved_by, referenced_by)

        handle = handles[arg.return_index]
        if arg.mode is RefMode.MOVE:
            self._moved_by[key] = referenced_by
            return handle
        return handle.derive(arg.mode)

    def resolve_step(self, step: Step) -> ResolvedCall:
        resolved = tuple(self.resolve_arg(a, referenced_by=step.label) for a in step.args)
        return ResolvedCall(
            label=step.label,
            function_id=step.function,
            type_arguments=step.type_arguments,
            resolved_args=resolved,
        )


def resolve_graph(
    graph: StepGraph,
    signer: SignerToken | None = None,
    return_arity: Callable[[Step], int] | dict[str, int] | None = None,
) -> list[ResolvedCall]:
    """
    Resolve a whole graph without a script builder.

    Each step gets placeholder handles `OutputHandle(call_index, i)`. The number
    of outputs per step comes from `return_arity` (a callable or a label->arity
    map); without it, a step's arity is taken as one more than the highest index
    any later ref asks of it. Resolution stops at the first structural error.
    """
    resolver = ArgumentResolver(signer)
    calls: list[ResolvedCall] = []
    for call_index, step in enumerate(graph):
        calls.append(resolver.resolve_step(step))
        arity = _arity_for(graph, step, return_arity)
        resolver.record_outputs(step.label, [OutputHandle(call_index, i) for i in range(arity)])
    logger.debug(f"Resolved {len(calls)} call(s); consumed outputs: {sorted(resolver.consumed)}")
    return calls


def _arity_for(
    graph: StepGraph,
    step: Step,
    return_arity: Callable[[Step], int] | dict[str, int] | None,
) -> int:
    if callable(return_arity):
        return return_arity(step)
    if isinstance(return_arity, dict) and step.label in return_arity:
        return return_arity[step.label]
    highest = -1
    for s in graph:
        for a in s.refs:
            if a.step == step.label:
                highest = max(highest, a.return_index)
    return highest + 1
