# ytm_rpc/backoff.py

BRIDGE_RETRY_BASE = 5.0
BRIDGE_RETRY_MAX = 60.0

AGENT_RETRY_BASE = 5.0
AGENT_RETRY_MAX = 30.0


def linear_backoff(attempt: int, base: float, ceiling: float) -> float:
    """Seconds to wait before retry number `attempt` (1-based)."""
    return min(base * max(attempt, 1), ceiling)
