"""
gateway.transform — Baseline / delta transformation.

Pure, total function. Zero I/O. No rounding: presentation owns formatting.

    baseline_i          = value_i - delta_i
    baseline_composite  = mean(baseline_i)               or None if no axes
    delta_from_baseline = composite - baseline_composite  or None

composite, rank and classification are passed through verbatim; the
gateway never recomputes the upstream's scoring. baseline_rank and
baseline_classification are not computed and are always None.
"""

from __future__ import annotations

import math

from gateway.contract import (
    ClientResponse,
    SimulatedAxis,
    ValidatedRequest,
    ValidatedUpstreamResponse,
)


def transform(
    req: ValidatedRequest,
    resp: ValidatedUpstreamResponse,
) -> ClientResponse:
    simulated_axes = [
        SimulatedAxis(
            axis_slug=axis.slug,
            baseline=axis.baseline,
            simulated=axis.value,
            delta=axis.delta,
        )
        for axis in resp.axes
    ]

    baselines = [a.baseline for a in simulated_axes if math.isfinite(a.baseline)]
    baseline_composite = sum(baselines) / len(baselines) if baselines else None
    delta_from_baseline = (
        resp.composite - baseline_composite if baseline_composite is not None else None
    )

    return ClientResponse(
        country=req.country_code,
        simulated_axes=simulated_axes,
        simulated_composite=resp.composite,
        simulated_rank=resp.rank,
        simulated_classification=resp.classification,
        baseline_composite=baseline_composite,
        baseline_rank=None,
        baseline_classification=None,
        delta_from_baseline=delta_from_baseline,
    )
