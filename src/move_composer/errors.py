"""Composer error type definitions.

Structural problems (malformed ids, bad references, hard validation findings)
are raised as `ComposerError` subclasses. Each carries a stable string code and
a JSON-serializable data payload so callers and agents can inspect them.
VM failures are never raised; they are diagnosed as data.
"""

from __future__ import annotations

from typing import Any


class ComposerError(Exception):
    """Base class for move-composer errors."""

    def __init__(self, code: str, message: str, data: dict[str, Any] | None = None):
        self.code = code
        self.message = message
        self.data = data or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


class MalformedFunctionIdError(ComposerError):
    """Function id is not `0xaddr::module::function`."""

    def __init__(self, function_id: str, reason: str):
        super().__init__(
            code="MALFORMED_FUNCTION_ID",
            message=f'Invalid function ID "{function_id}": {reason} (expected "0xaddr::module::function")',
            data={"functionId": function_id, "reason": reason},
        )


class DuplicateStepLabelError(ComposerError):
    def __init__(self, label: str):
        super().__init__(
            code="DUPLICATE_STEP_LABEL",
            message=f'Duplicate step label: "{label}"',
            data={"label": label},
        )


class EmptyGraphError(ComposerError):
    def __init__(self) -> None:
        super().__init__(code="EMPTY_GRAPH", message="A composition requires at least one step")


class UnknownStepReference(ComposerError):
    """A ref names a step that has not been resolved yet (unknown, forward or self reference)."""

    def __init__(self, step: str, referenced_by: str, available: list[str]):
        super().__init__(
            code="UNKNOWN_STEP_REFERENCE",
            message=(
                f'Step "{referenced_by}" references unknown step "{step}". '
                f"Available: [{', '.join(available)}]"
            ),
            data={"step": step, "referencedBy": referenced_by, "available": available},
        )


class ReturnIndexOutOfBounds(ComposerError):
    def __init__(self, step: str, return_index: int, arity: int, referenced_by: str):
        super().__init__(
            code="RETURN_INDEX_OUT_OF_BOUNDS",
            message=(
                f'Step "{step}" has {arity} return value(s), but index {return_index} '
                f'was requested by step "{referenced_by}"'
            ),
            data={"step": step, "returnIndex": return_index, "arity": arity, "referencedBy": referenced_by},
        )


class HandleAlreadyMovedError(ComposerError):
    """An output was moved by one step and referenced again by another."""

    def __init__(self, step: str, return_index: int, moved_by: str, referenced_by: str):
        super().__init__(
            code="HANDLE_ALREADY_MOVED",
            message=(
                f'Step "{referenced_by}" references {step}[{return_index}], '
                f'which was already moved by step "{moved_by}"'
            ),
            data={"step": step, "returnIndex": return_index, "movedBy": moved_by, "referencedBy": referenced_by},
        )


class ValidationFailedError(ComposerError):
    """Hard validation findings abort the build before any composition call."""

    def __init__(self, findings: list[Any]):
        self.findings = list(findings)
        msgs = "\n  ".join(f.message for f in self.findings)
        super().__init__(
            code="VALIDATION_FAILED",
            message=f"Validation failed:\n  {msgs}",
            data={"findings": [f.to_dict() for f in self.findings]},
        )


class PlanDecodeError(ComposerError):
    def __init__(self, path: str, reason: str):
        super().__init__(
            code="PLAN_DECODE_ERROR",
            message=f"Invalid plan at {path}: {reason}",
            data={"path": path, "reason": reason},
        )


class PlanBuildError(ComposerError):
    def __init__(self, reason: str):
        super().__init__(code="PLAN_BUILD_ERROR", message=reason)


class NodeRequestError(ComposerError):
    """The fullnode REST API returned an error or could not be reached."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        super().__init__(
            code="NODE_REQUEST_ERROR",
            message=f"Request to {url} failed: {reason}",
            data={"url": url, "reason": reason, "statusCode": status_code},
        )


class AbiFetchError(NodeRequestError):
    """A module ABI lookup failed for a reason other than "not found"."""


class ExecutionUnavailableError(ComposerError):
    def __init__(self) -> None:
        super().__init__(
            code="EXECUTION_UNAVAILABLE",
            message="Cannot execute: no transaction executor configured (simulation-only mode)",
        )
