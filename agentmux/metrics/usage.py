"""Token usage aggregation and context-window accounting.

A single agent turn may involve several underlying models (e.g. a small model
for tool routing plus the main model). Each of them reads roughly the same
conversation from cache, so per-model numbers are combined with max, not sum.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from agentmux.core.models import UsageStats

DEFAULT_CONTEXT_WINDOW = 200_000

# Fallback context windows when the agent does not report one
DEFAULT_CONTEXT_WINDOWS: dict[str, int] = {
    "claude-code": 200_000,
    "codex": 200_000,
    "opencode": 128_000,
    "terminal": 0,
}


@dataclass(frozen=True)
class ModelStats:
    """Per-model usage as reported in a turn's model breakdown."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    context_window: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelStats":
        """Accept both camelCase (stream-json) and snake_case keys."""

        def pick(*keys: str) -> int:
            for key in keys:
                value = data.get(key)
                if isinstance(value, (int, float)):
                    return int(value)
            return 0

        return cls(
            input_tokens=pick("inputTokens", "input_tokens"),
            output_tokens=pick("outputTokens", "output_tokens"),
            cache_read_input_tokens=pick("cacheReadInputTokens", "cache_read_input_tokens"),
            cache_creation_input_tokens=pick(
                "cacheCreationInputTokens", "cache_creation_input_tokens"
            ),
            context_window=pick("contextWindow", "context_window"),
        )


@dataclass(frozen=True)
class TokenPricing:
    """USD prices per 1M tokens."""

    input_per_1m: float
    output_per_1m: float
    cache_read_per_1m: float | None = None
    cache_write_per_1m: float | None = None


# Agent families that publish no pricing are absent (cost is unknown, not free)
AGENT_PRICING: dict[str, TokenPricing] = {
    "claude-code": TokenPricing(
        input_per_1m=3.0,
        output_per_1m=15.0,
        cache_read_per_1m=0.3,
        cache_write_per_1m=3.75,
    ),
    "opencode": TokenPricing(
        input_per_1m=3.0,
        output_per_1m=15.0,
        cache_read_per_1m=0.3,
        cache_write_per_1m=3.75,
    ),
}


def _as_int(value: Any) -> int:
    return int(value) if isinstance(value, (int, float)) else 0


def aggregate_model_usage(
    model_usage: Mapping[str, Mapping[str, Any] | ModelStats] | None,
    usage: Mapping[str, Any] | None = None,
    total_cost_usd: float = 0.0,
    *,
    default_context_window: int = DEFAULT_CONTEXT_WINDOW,
    has_cost_data: bool = True,
) -> UsageStats:
    """Combine a per-model usage breakdown into one UsageStats record.

    Args:
        model_usage: Per-model statistics keyed by model name (may be None)
        usage: Top-level usage record, used when no breakdown is present
        total_cost_usd: Total cost reported for the turn
        default_context_window: Window used when no model declares a larger one
        has_cost_data: False when the agent family publishes no pricing

    Returns:
        Aggregated statistics using max across models for every token class
    """
    max_input = 0
    max_output = 0
    max_cache_read = 0
    max_cache_creation = 0
    context_window = default_context_window

    for stats in (model_usage or {}).values():
        if not isinstance(stats, ModelStats):
            stats = ModelStats.from_dict(stats)
        max_input = max(max_input, stats.input_tokens)
        max_output = max(max_output, stats.output_tokens)
        max_cache_read = max(max_cache_read, stats.cache_read_input_tokens)
        max_cache_creation = max(max_cache_creation, stats.cache_creation_input_tokens)
        context_window = max(context_window, stats.context_window)

    # Older CLI versions only report the top-level record
    if max_input == 0 and max_output == 0:
        usage = usage or {}
        max_input = _as_int(usage.get("input_tokens"))
        max_output = _as_int(usage.get("output_tokens"))
        max_cache_read = _as_int(usage.get("cache_read_input_tokens"))
        max_cache_creation = _as_int(usage.get("cache_creation_input_tokens"))

    return UsageStats(
        input_tokens=max_input,
        output_tokens=max_output,
        cache_read_input_tokens=max_cache_read,
        cache_creation_input_tokens=max_cache_creation,
        total_cost_usd=total_cost_usd if has_cost_data else 0.0,
        has_cost_data=has_cost_data,
        context_window=context_window,
    )


def calculate_context_tokens(stats: UsageStats) -> int:
    """Total tokens occupying the context window for a turn."""
    return (
        stats.input_tokens
        + stats.output_tokens
        + stats.cache_read_input_tokens
        + stats.cache_creation_input_tokens
    )


def context_usage_percent(stats: UsageStats) -> int:
    """Context-window utilization as an integer percentage in [0, 100].

    Returns 0 when the context window is unknown (<= 0).
    """
    if stats.context_window <= 0:
        return 0
    percent = 100 * calculate_context_tokens(stats) / stats.context_window
    # Round half up, not Python's banker's rounding
    return max(0, min(100, math.floor(percent + 0.5)))


def default_context_window(agent_id: str) -> int:
    return DEFAULT_CONTEXT_WINDOWS.get(agent_id, DEFAULT_CONTEXT_WINDOW)


def resolve_pricing(agent_id: str) -> TokenPricing | None:
    """Pricing for an agent family, or None when it publishes none."""
    return AGENT_PRICING.get(agent_id)


def estimate_cost_usd(stats: UsageStats, pricing: TokenPricing) -> float:
    """Estimate the cost of a turn from per-million-token rates."""
    cache_read_rate = (
        pricing.cache_read_per_1m if pricing.cache_read_per_1m is not None else pricing.input_per_1m
    )
    cache_write_rate = (
        pricing.cache_write_per_1m if pricing.cache_write_per_1m is not None else pricing.input_per_1m
    )
    total = (
        stats.input_tokens * pricing.input_per_1m
        + stats.output_tokens * pricing.output_per_1m
        + stats.cache_read_input_tokens * cache_read_rate
        + stats.cache_creation_input_tokens * cache_write_rate
    )
    return total / 1_000_000


def with_cost(stats: UsageStats, agent_id: str, reported_cost: float | None = None) -> UsageStats:
    """Attach cost to usage stats.

    Uses the agent-reported cost when present, otherwise estimates from the
    family's pricing table. Families without pricing get ``has_cost_data=False``.
    """
    if reported_cost is not None:
        return stats.model_copy(update={"total_cost_usd": float(reported_cost), "has_cost_data": True})

    pricing = resolve_pricing(agent_id)
    if pricing is None:
        return stats.model_copy(update={"total_cost_usd": 0.0, "has_cost_data": False})

    return stats.model_copy(
        update={"total_cost_usd": estimate_cost_usd(stats, pricing), "has_cost_data": True}
    )
