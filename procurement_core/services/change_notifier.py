"""
In-process change signals for views that need to refresh after a write.

Publishers name the signal; subscribers receive a ``ChangeSignal`` with the
timestamp and payload. ``budget_updated`` also fans out to
``dashboard_updated`` since dashboards summarize budgets.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from procurement_core.observability.logging import get_logger
from procurement_core.schemas import utc_now_iso


logger = get_logger(__name__)

BUDGET_UPDATED = "budget_updated"
INVOICE_UPDATED = "invoice_updated"
DASHBOARD_UPDATED = "dashboard_updated"

# signal -> signals it also triggers
CASCADES: Dict[str, List[str]] = {
    BUDGET_UPDATED: [DASHBOARD_UPDATED],
}


@dataclass(frozen=True)
class ChangeSignal:
    name: str
    ts: str
    payload: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[ChangeSignal], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """Named-signal publisher; a failing subscriber never breaks publishing."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, name: str, payload: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Deliver ``name`` and any cascaded signals to their subscribers.

        Returns:
            List[str]: Signal names delivered, in order
        """
        delivered: List[str] = []
        pending = [name]
        while pending:
            current = pending.pop(0)
            if current in delivered:
                continue
            signal = ChangeSignal(name=current, ts=utc_now_iso(), payload=dict(payload or {}))
            await self._deliver(signal)
            delivered.append(current)
            pending.extend(CASCADES.get(current, []))
        return delivered

    async def _deliver(self, signal: ChangeSignal) -> None:
        for handler in list(self._subscribers.get(signal.name, [])):
            try:
                result = handler(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Change signal subscriber failed",
                    signal=signal.name, handler=getattr(handler, "__name__", repr(handler)), error=str(e)
                )
        logger.debug("Published change signal", signal=signal.name)
