"""Session configuration and engine tunables."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, Optional

DISCOVERY_PER_TTL = "per-ttl"
DISCOVERY_AGGREGATE = "aggregate"


class TickPolicy(str, enum.Enum):
    """What the prober does when a tick is due while the previous one still runs."""

    OVERLAP = "overlap"
    SKIP = "skip"


@dataclass(frozen=True)
class SessionConfig:
    """Per-run parameters. ``timeout`` is the per-probe timeout in milliseconds."""

    target: str
    max_hops: int = 30
    timeout: int = 1000
    probes_per_hop: int = 3

    def __post_init__(self) -> None:
        if not self.target or not str(self.target).strip():
            raise ValueError("target must not be empty")
        if not 1 <= self.max_hops <= 255:
            raise ValueError(f"max_hops must be between 1 and 255, got {self.max_hops}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.probes_per_hop < 1:
            raise ValueError(
                f"probes_per_hop must be at least 1, got {self.probes_per_hop}"
            )

    def with_target(self, target: str) -> "SessionConfig":
        return replace(self, target=target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "maxHops": self.max_hops,
            "timeout": self.timeout,
            "probesPerHop": self.probes_per_hop,
        }


@dataclass(frozen=True)
class EngineSettings:
    """Tunables shared by the orchestrator, prober and resolver."""

    batch_size: int = 15
    max_consecutive_failures: int = 3
    probe_interval: float = 1.0
    tick_policy: TickPolicy = TickPolicy.OVERLAP
    dns_timeout: float = 5.0
    fallback_dns_server: str = "8.8.8.8"
    fallback_dns_timeout_ms: int = 3000
    discovery_mode: str = DISCOVERY_PER_TTL
    platform: Optional[str] = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        if self.probe_interval <= 0:
            raise ValueError(
                f"probe_interval must be positive, got {self.probe_interval}"
            )
        if self.dns_timeout <= 0:
            raise ValueError(f"dns_timeout must be positive, got {self.dns_timeout}")
        if self.discovery_mode not in (DISCOVERY_PER_TTL, DISCOVERY_AGGREGATE):
            raise ValueError(f"Unknown discovery mode: {self.discovery_mode}")
        # accept plain strings from argparse or callers
        object.__setattr__(self, "tick_policy", TickPolicy(self.tick_policy))
