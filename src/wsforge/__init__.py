"""WsForge: WebSocket virtual-user load testing."""

from __future__ import annotations

from wsforge._internal.config import ConnectionBehavior, TestConfig, build_config, load_config
from wsforge.engine.driver import VirtualUserDriver
from wsforge.engine.runner import run_load_test
from wsforge.metrics.models import IterationOutcome, RunSummary

__version__ = "0.1.0"

__all__ = [
    "ConnectionBehavior",
    "IterationOutcome",
    "RunSummary",
    "TestConfig",
    "VirtualUserDriver",
    "build_config",
    "load_config",
    "run_load_test",
]
