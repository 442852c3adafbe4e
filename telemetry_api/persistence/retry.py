"""Retry con backoff exponencial para escrituras al data store.

Delay antes del intento n+1 = base_delay * 2**(n-1) (1s, 2s, ...).
Solo se reintentan errores cuyo código está en RETRYABLE_CODES; el resto
aborta inmediatamente. El coordinador no toca estadísticas ni eventos:
eso es responsabilidad del llamador.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ..monitoring.metrics import STORE_RETRIES
from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    """Configuración para retry con backoff."""

    max_attempts: int = 3
    base_delay: float = 1.0  # segundos
    exponential_base: float = 2.0

    def calculate_delay(self, attempt: int) -> float:
        """Delay tras el intento ``attempt`` (1-indexed), en segundos."""
        return self.base_delay * (self.exponential_base ** (attempt - 1))

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
            base_delay=float(os.getenv("RETRY_BASE_DELAY_MS", "1000")) / 1000.0,
        )


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Resultado explícito de una escritura: o value o error, nunca ambos."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class PersistenceCoordinator:
    """Ejecuta operaciones del data store con retry acotado."""

    def __init__(self, config: Optional[RetryConfig] = None, sleep: SleepFunc = asyncio.sleep):
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._total_attempts = 0
        self._total_retries = 0
        self._total_failures = 0

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def stats(self) -> dict:
        return {
            "total_attempts": self._total_attempts,
            "total_retries": self._total_retries,
            "total_failures": self._total_failures,
        }

    async def execute_with_retry(self, operation: Operation[T], label: str) -> T:
        """Ejecuta ``operation`` hasta max_attempts veces.

        Raises:
            La excepción original si no es reintentable o se agotan los intentos.
        """
        for attempt in range(1, self._config.max_attempts + 1):
            self._total_attempts += 1
            try:
                return await operation()
            except Exception as e:
                retryable = is_retryable(e)
                logger.error(
                    "[RETRY] %s failed attempt=%d/%d retryable=%s err=%s",
                    label, attempt, self._config.max_attempts, retryable, e,
                )
                if attempt == self._config.max_attempts or not retryable:
                    self._total_failures += 1
                    raise

                delay = self._config.calculate_delay(attempt)
                self._total_retries += 1
                STORE_RETRIES.labels(label=label).inc()
                logger.warning("[RETRY] %s retrying in %.2fs", label, delay)
                await self._sleep(delay)

        raise RuntimeError("Retry loop completed without result")

    async def attempt(self, operation: Operation[T], label: str) -> StoreResult[T]:
        """Como execute_with_retry pero devuelve StoreResult en vez de lanzar."""
        try:
            return StoreResult(value=await self.execute_with_retry(operation, label))
        except Exception as e:
            return StoreResult(error=e)
