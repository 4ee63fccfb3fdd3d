"""SmartSave rule-driven automatic savings engine."""

from __future__ import annotations

from .config import BaseConfig, DevConfig, TestConfig
from .context import EngineContext, create_engine_context

__all__ = ["BaseConfig", "DevConfig", "TestConfig", "EngineContext", "create_engine_context"]
