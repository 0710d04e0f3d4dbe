"""
Simulation front door for EvoSim.

Simulation picks one of the two engine backends from the configuration and
forwards every operation to it. Callers (the headless runner, the CLI, any
renderer) only ever talk to this class.

  use_data_oriented_engine=True   -> DataOrientedEngine  (numpy columns)
  use_data_oriented_engine=False  -> LegacyEngine        (object per entity)
"""

from config import SimulationConfig
from data_engine import DataOrientedEngine
from engine import Stats
from legacy_engine import LegacyEngine

_BACKENDS = {
    True:  DataOrientedEngine,
    False: LegacyEngine,
}


class Simulation:
    """
    Main simulation controller.
    """

    def __init__(self, config: SimulationConfig = None, on_step_callback=None):
        self.config = config if config is not None else SimulationConfig()
        self._engine = _BACKENDS[bool(self.config.use_data_oriented_engine)](self.config)
        self.on_step_callback = on_step_callback    # called after every step (for live viz)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def engine_name(self) -> str:
        return self._engine.name

    @property
    def seed(self) -> int:
        return self._engine.seed

    @property
    def tick(self) -> int:
        return self._engine.tick

    @property
    def time(self) -> float:
        return self._engine.time

    def step(self, dt: float) -> Stats:
        stats = self._engine.step(dt)
        if self.on_step_callback:
            self.on_step_callback(stats)
        return stats

    def add_agent(self, x: float, y: float, genes=None) -> bool:
        return self._engine.add_agent(x, y, genes)

    def add_resource(self, x: float, y: float) -> bool:
        return self._engine.add_resource(x, y)

    def get_stats(self) -> Stats:
        return self._engine.get_stats()

    def agents(self) -> list:
        return self._engine.agents()

    def resources(self) -> list:
        return self._engine.resources()

    def reset(self):
        self._engine.reset()

    def close(self):
        self._engine.close()
