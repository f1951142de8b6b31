"""Runtime helpers for probe scripts.

timerbench passes the requested resolution and sample count to the probe
command through environment variables and reads samples back from stdout.
This module provides a small, stable API for both directions.
"""

from .probe import ProbeConfig, get_probe_config, print_samples

__all__ = ["ProbeConfig", "get_probe_config", "print_samples"]
