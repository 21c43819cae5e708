"""
Resilience patterns for record store backends.

- Circuit Breaker: stops calling a backend that keeps failing
- store_resilient: decorator that applies the breaker, translates driver
  errors and records store latency
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
    CircuitBreakerConfig,
    get_circuit_breaker,
    reset_circuit_breaker,
    get_circuit_breaker_stats
)
from .decorators import store_resilient

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitState",
    "CircuitBreakerConfig",
    "get_circuit_breaker",
    "reset_circuit_breaker",
    "get_circuit_breaker_stats",
    "store_resilient"
]
