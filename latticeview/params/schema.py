"""Parameter schema with validation. Units: lattice nodes, seconds, pixels."""

from dataclasses import dataclass, field, asdict
from typing import Any


class ValidationError(ValueError):
    """Parameter validation failed."""
    pass


def _positive(value: float, name: str) -> None:
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def _non_negative(value: float, name: str) -> None:
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


def _port(value: int, name: str) -> None:
    if not 1 <= value <= 65535:
        raise ValidationError(f"{name} must be in [1, 65535], got {value}")


BACKENDS = ("auto", "cpu", "gpu", "cuda", "vulkan")


@dataclass(frozen=True)
class RuntimeParams:
    """Taichi runtime: backend (see BACKENDS), debug, offline_cache."""
    backend: str = "auto"
    debug: bool = False
    offline_cache: bool = True

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValidationError(f"backend must be one of {BACKENDS}, got {self.backend!r}")


@dataclass(frozen=True)
class ChannelParams:
    """Channel: host, retry_budget [iterations], timeouts [s]."""
    host: str = "127.0.0.1"
    retry_budget: int = 1000
    header_timeout: float = 1.0
    receive_timeout: float = 0.001
    connect_timeout: float = 1.0

    def __post_init__(self) -> None:
        if not self.host:
            raise ValidationError("host cannot be empty")
        _non_negative(self.retry_budget, "retry_budget")
        _positive(self.header_timeout, "header_timeout")
        _positive(self.receive_timeout, "receive_timeout")
        _positive(self.connect_timeout, "connect_timeout")

    @property
    def max_poll_seconds(self) -> float:
        """Upper bound on how long one poll blocks the tick."""
        return self.header_timeout + (self.retry_budget + 1) * self.receive_timeout


@dataclass(frozen=True)
class StreamParams:
    """Ports: velocity_port, density_port (split channels), combined_port."""
    velocity_port: int = 4000
    density_port: int = 4001
    combined_port: int = 4000

    def __post_init__(self) -> None:
        _port(self.velocity_port, "velocity_port")
        _port(self.density_port, "density_port")
        _port(self.combined_port, "combined_port")
        if self.velocity_port == self.density_port:
            raise ValidationError(
                f"velocity_port and density_port must differ, both are {self.velocity_port}"
            )


@dataclass(frozen=True)
class StreamlineParams:
    """Streamlines: step_count [steps], seed_stride [nodes] between seeds on the x=0 face."""
    step_count: int = 100
    seed_stride: int = 4
    enabled: bool = True

    def __post_init__(self) -> None:
        _non_negative(self.step_count, "step_count")
        if self.seed_stride < 1:
            raise ValidationError(f"seed_stride must be >= 1, got {self.seed_stride}")


@dataclass(frozen=True)
class DisplayParams:
    """Display: window size [px], particle_radius [nodes], playback_interval [s], loop_playback."""
    title: str = "LatticeView"
    width: int = 1280
    height: int = 720
    particle_radius: float = 0.1
    vsync: bool = True
    playback_interval: float = 0.1
    loop_playback: bool = True

    def __post_init__(self) -> None:
        _positive(self.width, "width")
        _positive(self.height, "height")
        _positive(self.particle_radius, "particle_radius")
        _non_negative(self.playback_interval, "playback_interval")


@dataclass(frozen=True)
class ViewerConfig:
    """Complete viewer configuration."""

    channel: ChannelParams = field(default_factory=ChannelParams)
    stream: StreamParams = field(default_factory=StreamParams)
    streamline: StreamlineParams = field(default_factory=StreamlineParams)
    display: DisplayParams = field(default_factory=DisplayParams)
    runtime: RuntimeParams = field(default_factory=RuntimeParams)

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested dictionary."""
        return {
            "channel": asdict(self.channel),
            "stream": asdict(self.stream),
            "streamline": asdict(self.streamline),
            "display": asdict(self.display),
            "runtime": asdict(self.runtime),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ViewerConfig":
        """Create from nested dictionary."""
        param_classes = {
            "channel": ChannelParams,
            "stream": StreamParams,
            "streamline": StreamlineParams,
            "display": DisplayParams,
            "runtime": RuntimeParams,
        }
        unknown = set(data) - set(param_classes)
        if unknown:
            raise ValidationError(f"Unknown parameter groups: {sorted(unknown)}")
        try:
            kwargs = {k: param_classes[k](**(data[k] or {})) for k in data}
        except TypeError as exc:
            raise ValidationError(str(exc)) from exc
        return cls(**kwargs)

    def with_updates(self, **kwargs: Any) -> "ViewerConfig":
        """Create new config with updates."""
        current = self.to_dict()
        for key, value in kwargs.items():
            if key not in current:
                raise ValidationError(f"Unknown parameter group: {key}")
            if isinstance(value, dict):
                current[key].update(value)
            else:
                current[key] = asdict(value)
        return self.from_dict(current)
