"""Exception hierarchy shared by the sampler, terminal and event loop."""

from __future__ import annotations


class SysgaugeError(Exception):
    """Base class for every error raised by sysgauge itself."""


# ── Sampling ───────────────────────────────────────────────────────────────


class TransientSampleError(SysgaugeError):
    """A single sample failed; the next tick retries."""


class DeviceUnavailable(TransientSampleError):
    """The metric source is busy or temporarily missing."""


class PermissionDenied(TransientSampleError):
    """The OS refused to expose a metric to this user."""


class TransientIOError(TransientSampleError):
    """Reading a metric hit an I/O glitch."""


class FatalBackendError(SysgaugeError):
    """A metric class is permanently unavailable (e.g. unsupported platform)."""


# ── Environment ────────────────────────────────────────────────────────────


class TerminalError(SysgaugeError):
    """The terminal could not be put into dashboard mode."""


class ConfigError(SysgaugeError):
    """Configuration values are invalid."""
