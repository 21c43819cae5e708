"""Decorator applying resilience patterns to record store operations."""

import functools
import time
from typing import Callable, TypeVar

from procurement_core.errors import TransientStoreError
from procurement_core.observability.metrics import store_operation_seconds
from procurement_core.observability.tracing import get_tracer
from .circuit_breaker import get_circuit_breaker

tracer = get_tracer(__name__)

T = TypeVar('T')


def store_resilient(operation_name: str):
    """Decorator for async store backend methods.

    The decorated method's instance must expose ``backend_name``,
    ``circuit_config`` and ``driver_errors``. Calls go through the backend's
    shared circuit breaker; driver errors are re-raised as
    ``TransientStoreError``. Nothing is retried.

    Args:
        operation_name: Operation label for spans and latency metrics

    Returns:
        Decorated coroutine method
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> T:
            breaker = get_circuit_breaker(f"store:{self.backend_name}", self.circuit_config)
            started = time.perf_counter()

            with tracer.start_as_current_span(f"store.{operation_name}") as span:
                span.set_attribute("store.backend", self.backend_name)
                if args:
                    span.set_attribute("store.path", str(args[0]))
                try:
                    return await breaker.call(func, self, *args, **kwargs)
                except self.driver_errors as e:
                    span.set_attribute("store.error", type(e).__name__)
                    path = str(args[0]) if args else None
                    raise TransientStoreError(
                        f"Store {operation_name} failed for {path}: {e}",
                        operation=operation_name,
                        path=path,
                    ) from e
                finally:
                    store_operation_seconds.labels(
                        backend=self.backend_name, operation=operation_name
                    ).observe(time.perf_counter() - started)

        return wrapper

    return decorator
