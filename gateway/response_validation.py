"""
gateway.response_validation — Upstream response validator.

    validate_response(body, request=None) -> ValidatedUpstreamResponse
        raises ShapeError(NonJSON)               body is not JSON
        raises ShapeError(MissingRequiredField)  composite / rank / classification / axes
                                                 absent or mistyped
        raises ShapeError(InvalidAxisEntry)      an axes element is unusable

Never forward an upstream response the gateway cannot itself interpret:
a 200 with a structurally invalid body becomes a 502.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from gateway import errors
from gateway.contract import ValidatedRequest, ValidatedUpstreamResponse, resolve_axis_key


def validate_response(
    body: bytes | str,
    request: ValidatedRequest | None = None,
) -> ValidatedUpstreamResponse:
    """Parse and validate an upstream success body.

    When ``request`` is given, every axis it adjusted must be present in
    the upstream ``axes``; a composite reported without an adjusted axis
    is not presented as complete.
    """
    try:
        parsed: Any = json.loads(body)
    except (TypeError, ValueError, RecursionError):
        raise errors.ShapeError(errors.NON_JSON, "Upstream returned invalid JSON.") from None

    if not isinstance(parsed, dict):
        raise errors.ShapeError(
            errors.MISSING_REQUIRED_FIELD,
            f"Upstream body is a JSON {type(parsed).__name__}, not an object.",
        )

    try:
        response = ValidatedUpstreamResponse.model_validate(parsed)
    except PydanticValidationError as exc:
        raise _shape_error_from(exc) from None

    _check_axes(response, request)
    return response


def _shape_error_from(exc: PydanticValidationError) -> errors.ShapeError:
    problems: list[str] = []
    entry_only = True
    for e in exc.errors():
        loc = e.get("loc", ())
        problems.append(f"{'.'.join(str(p) for p in loc)}: {e.get('msg', 'invalid')}")
        # ("axes", <index>, ...) is an entry problem; ("axes",) is the container.
        if not (len(loc) > 1 and loc[0] == "axes"):
            entry_only = False

    kind = errors.INVALID_AXIS_ENTRY if entry_only else errors.MISSING_REQUIRED_FIELD
    return errors.ShapeError(kind, "; ".join(problems))


def _check_axes(
    response: ValidatedUpstreamResponse,
    request: ValidatedRequest | None,
) -> None:
    seen: set[str] = set()
    for i, axis in enumerate(response.axes):
        canonical = resolve_axis_key(axis.slug)
        if canonical is None:
            raise errors.ShapeError(
                errors.INVALID_AXIS_ENTRY,
                f"axes.{i}.slug: unknown axis '{axis.slug}'",
            )
        if canonical in seen:
            raise errors.ShapeError(
                errors.INVALID_AXIS_ENTRY,
                f"axes.{i}.slug: duplicate axis '{axis.slug}'",
            )
        seen.add(canonical)

    if request is not None:
        missing = sorted(set(request.adjustments) - seen)
        if missing:
            raise errors.ShapeError(
                errors.INVALID_AXIS_ENTRY,
                f"axes missing adjusted axis/axes: {missing}",
            )
