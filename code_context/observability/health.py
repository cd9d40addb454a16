"""
Health check for the configured embedding backend.

Embeds a short probe text and reports availability and latency without
raising, so callers can decide up front whether to run an embedding sweep
or go straight to keyword ranking.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from code_context.embeddings import EmbeddingAdapter
from code_context.errors import CodeContextError

PROBE_TEXT = "health check"


class HealthStatus(Enum):
    """Health status enumeration."""
    UP = "up"
    DOWN = "down"


@dataclass
class ComponentHealth:
    """
    Health status for a single component.

    Attributes:
        component: Name of the component (the provider id)
        healthy: True if component is operational, False otherwise
        status: String representation of health ("up" or "down")
        latency_ms: Response latency in milliseconds (optional)
        dimension: Length of the probe embedding (optional)
        error_message: Error details if unhealthy (optional)
    """

    component: str
    healthy: bool
    status: str
    latency_ms: Optional[float] = None
    dimension: Optional[int] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "component": self.component,
            "healthy": self.healthy,
            "status": self.status,
            "latency_ms": self.latency_ms,
            "dimension": self.dimension,
            "error_message": self.error_message,
        }


class HealthChecker:
    """Probes embedding adapters."""

    def check_embedding_backend(self, adapter: EmbeddingAdapter) -> ComponentHealth:
        """
        Check an embedding backend by embedding a probe text.

        Returns:
            ComponentHealth: Health status with latency and error details
        """
        start_time = time.time()
        try:
            embedding = adapter.generate_embedding(PROBE_TEXT)
        except CodeContextError as e:
            return ComponentHealth(
                component=adapter.provider,
                healthy=False,
                status=HealthStatus.DOWN.value,
                latency_ms=(time.time() - start_time) * 1000,
                error_message=str(e),
            )

        return ComponentHealth(
            component=adapter.provider,
            healthy=True,
            status=HealthStatus.UP.value,
            latency_ms=(time.time() - start_time) * 1000,
            dimension=len(embedding),
        )
