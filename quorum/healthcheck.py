"""Pre-debate connectivity check for every agent port."""

import asyncio
import logging
import time

from quorum.models import Expert
from quorum.providers.base import AgentPort

logger = logging.getLogger(__name__)

PING_TIMEOUT_SEC = 15.0

_PROBE_EXPERT = Expert(id="healthcheck", name="Health check", temperature=0.0)
_PROBE_PROMPT = "Reply with the word OK only."


async def _ping(model: str, port: AgentPort, timeout: float) -> tuple[bool, str]:
    started = time.monotonic()
    try:
        await asyncio.wait_for(port.invoke(_PROBE_EXPERT, _PROBE_PROMPT, []), timeout=timeout)
    except TimeoutError:
        logger.debug("Ping %s: no reply within %.0fs", model, timeout)
        return False, f"TimeoutError: no reply within {timeout:.0f}s"
    except Exception as exc:
        # Any failure only marks the model unusable for this debate
        logger.debug("Ping %s failed: %r", model, exc)
        return False, str(exc) or type(exc).__name__
    logger.debug("Ping %s ok in %.2fs", model, time.monotonic() - started)
    return True, ""


async def run_health_checks(
    ports: dict[str, AgentPort],
    timeout: float = PING_TIMEOUT_SEC,
) -> dict[str, tuple[bool, str]]:
    """Ping every port concurrently.

    Returns ``{model: (ok, error)}`` with an empty error for healthy models.
    """
    names = list(ports)
    outcomes = await asyncio.gather(*(_ping(n, ports[n], timeout) for n in names))
    results = dict(zip(names, outcomes))
    failed = sorted(n for n, (ok, _) in results.items() if not ok)
    if failed:
        logger.info("Health check: %d/%d models failed (%s)", len(failed), len(names), ", ".join(failed))
    return results
