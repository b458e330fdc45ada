"""Hummingbird flower-feeding environment for reinforcement learning."""
from __future__ import annotations

from hummingbird_sim.api import EnvController
from hummingbird_sim.config import AgentConfig, AreaConfig
from hummingbird_sim.domain.agents.hummingbird import HummingbirdAgent, SpawnError, FreezeError
from hummingbird_sim.domain.environment.area import FlowerArea
from hummingbird_sim.domain.environment.flower import Flower

__all__ = [
    "EnvController", "AgentConfig", "AreaConfig",
    "HummingbirdAgent", "SpawnError", "FreezeError",
    "FlowerArea", "Flower",
]
