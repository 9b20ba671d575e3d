"""
Spike suppression for counter samples.

HS110 plugs occasionally report a wildly inflated ``total_wh`` right after a
firmware hiccup or counter reset. Counters should only grow slowly between
runs, so a counter sample that jumps by more than 10% relative to the
previous run's sample of the same series is replaced by the previous value.

This is a **pure function**: no I/O, no clock, inputs are never mutated.

CHANGELOG:
- 2026-10-18: Pass through when the previous counter value is zero or negative
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from exporter.src.models import MetricType, Sample, SampleKey

logger = logging.getLogger(__name__)

MAX_COUNTER_RATIO: float = 1.1
"""Largest accepted ``current / previous`` ratio for a counter sample."""


def sanitize(current: Sequence[Sample], last: Sequence[Sample]) -> list[Sample]:
    """Replace implausible counter jumps with the previous run's value.

    For every sample in *current* the sample with the same key in *last* is
    looked up. When both are counters and ``current / previous`` exceeds
    :data:`MAX_COUNTER_RATIO`, the returned sample carries the previous value.
    Everything else passes through unchanged: samples without a match,
    gauges, and counters whose previous value is zero or negative (there is
    no meaningful ratio against such a baseline).

    Args:
        current: Samples built in this run.
        last: Samples of the previous run's measurement.

    Returns:
        A new list, same length and order as *current*.
    """
    previous_by_key: dict[SampleKey, Sample] = {}
    for sample in last:
        previous_by_key.setdefault(sample.key, sample)

    sanitized: list[Sample] = []
    for sample in current:
        previous = previous_by_key.get(sample.key)
        if previous is not None and _is_spike(sample, previous):
            logger.warning(
                "Value %s for %s is more than %d%% larger than the last sampled "
                "value %s, keeping previous value instead",
                sample.value,
                sample.sample_name,
                round((MAX_COUNTER_RATIO - 1) * 100),
                previous.value,
            )
            sanitized.append(sample.model_copy(update={"value": previous.value}))
        else:
            sanitized.append(sample)

    return sanitized


def _is_spike(sample: Sample, previous: Sample) -> bool:
    if sample.metric_type != MetricType.COUNTER:
        return False
    if previous.value <= 0:
        return False
    return sample.value / previous.value > MAX_COUNTER_RATIO
