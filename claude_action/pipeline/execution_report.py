"""Read execution metrics from the assistant runner's JSON output file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from claude_action.models.canonical import ExecutionDetails
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_execution_report(payload: Any) -> ExecutionDetails | None:
    """Metrics from the final `result` element of the runner's output array."""

    if not isinstance(payload, list) or not payload:
        return None
    last = payload[-1]
    if not isinstance(last, dict) or last.get("type") != "result":
        return None

    cost = last.get("cost_usd", last.get("total_cost_usd"))
    return ExecutionDetails(
        cost_usd=_number(cost),
        duration_ms=_number(last.get("duration_ms")),
        duration_api_ms=_number(last.get("duration_api_ms")),
    )


def load_execution_report(path: str | Path | None) -> ExecutionDetails | None:
    if not path:
        return None
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Error reading output file %s: %s", path, exc)
        return None
    return parse_execution_report(payload)
