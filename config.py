"""
EvoSim Configuration
All tunable parameters for the predator/prey ecosystem simulation,
plus the validated SimulationConfig consumed by the engines and the
headless runner.
"""

from dataclasses import dataclass, asdict, replace as _dc_replace
from typing import Optional

# ─── World ────────────────────────────────────────────────────────────────────
WORLD_WIDTH  = 1000.0   # world units east-west (torus)
WORLD_HEIGHT = 800.0    # world units north-south (torus)
GRID_CELL_SIZE = 50.0   # spatial index bucket edge length

# ─── Population ───────────────────────────────────────────────────────────────
MAX_AGENTS        = 5000
MAX_RESOURCES     = 2000
INITIAL_AGENTS    = 500
INITIAL_RESOURCES = 500
MIN_AGENT_COUNT   = 10      # lower edge of the "healthy" population band
MAX_AGENT_COUNT   = 3000    # upper edge of the "healthy" population band
RESOURCE_SPAWN_RATE = 0.2   # resources spawned per virtual second

# ─── Agent physiology ─────────────────────────────────────────────────────────
AGENT_START_ENERGY = 80.0
AGENT_MAX_ENERGY   = 150.0  # feeding cannot push energy above this
AGENT_MAX_AGE      = 200.0  # virtual seconds
BASE_MOVE_SPEED    = 30.0   # world units / s at speed gene 1.0
FLEE_SPEED_FACTOR  = 1.5
WANDER_TURN        = 0.6    # max heading change (radians) per wander draw
SIZE_DRAIN         = 0.5    # energy / s per unit of size
SPEED_DRAIN        = 0.2    # energy / s per unit of speed
CONTACT_RADIUS     = 5.0    # distance at which feeding / fighting happens

# ─── Combat ───────────────────────────────────────────────────────────────────
COMBAT_THRESHOLD      = 0.6   # size * aggression * attack_power needed to start a fight
PREDATION_GAIN        = 0.8   # predator eats prey: share of the loser's energy
SKIRMISH_GAIN         = 0.4   # any other fight
INTELLIGENCE_WEIGHT   = 0.5
STAMINA_WEIGHT        = 0.3

# Predator vs predator: sized up within RIVAL_RANGE * sense_range
RIVAL_RANGE      = 0.5
RIVAL_EDGE       = 1.2    # size or attack ratio that counts as a clear advantage
RIVAL_WEAK       = 0.8    # ratio below which the other side is clearly weaker
RIVAL_ENERGY     = 0.7    # rival must carry at least this share of our energy to be worth it
RIVAL_AGGRESSION = 0.6    # minimum aggression to pick a fight with a weaker predator

# ─── Reproduction ─────────────────────────────────────────────────────────────
MATE_RANGE              = 20.0
MIN_REPRODUCTION_AGE    = 2.0   # virtual seconds
REPRODUCTION_COOLDOWN   = 1.0   # virtual seconds between litters
REPRODUCTION_COST       = 0.3   # share of each parent's energy handed to the child
OFFSPRING_SCATTER       = 10.0  # child spawns within +/- this of the first parent

# ─── Resources ────────────────────────────────────────────────────────────────
FEED_AMOUNT            = 50.0   # max energy taken from a resource per bite
RESOURCE_AVAILABLE_MIN = 5.0    # energy a resource needs before it can be eaten
RESOURCE_LOW_ENERGY    = 10.0   # below this, regeneration kicks in
SPAWN_FADE_RATE        = 2.0    # fade-in completes in 0.5 s
DEPLETE_FADE_RATE      = 3.0    # fade-out completes in 1/3 s

# ─── Headless runner ──────────────────────────────────────────────────────────
BASE_DT           = 1.0 / 60.0  # virtual seconds per step before speed-up
TARGET_MINUTES    = 5.0
SPEED_MULTIPLIER  = 10.0
STABILITY_THRESHOLD = 0.1       # max coefficient of variation deemed "stable"
STABILITY_WINDOW  = 600         # trailing samples used for the stability score
MIN_HISTORY       = 10          # fewer samples than this => no verdict
DYNAMIC_FRACTION  = 0.10        # (max - min) / mean needed to count as dynamic
EXPLOSION_FACTOR  = 1.5         # agent_count > factor * max_agents stops the run
COLLAPSE_STEPS    = 3600        # consecutive resource-free steps before stopping
PROGRESS_INTERVAL = 10000       # log progress every N steps

# Quality score weights (see DESIGN.md)
QUALITY_WEIGHTS = {
    "stability":  0.30,
    "dynamic":    0.15,
    "health":     0.25,
    "evolution":  0.15,
    "completion": 0.15,
}
EXTINCTION_PENALTY = 0.5
EXPLOSION_PENALTY  = 0.3
EVOLUTION_TARGET_GENERATIONS = 3

# ─── Parameter search ─────────────────────────────────────────────────────────
SWEEP_AGENT_COUNTS    = [100, 200, 300, 400, 500, 600, 700, 800]
SWEEP_RESOURCE_COUNTS = [200, 300, 400, 500, 600, 700, 800, 900]
EARLY_ACCEPT_SCORE    = 0.8

# ─── Output / Logging ─────────────────────────────────────────────────────────
SAVE_DIR = "output"     # directory for diagnostics, charts and CSV logs
LOG_CSV  = True         # write the per-candidate CSV log during sweeps


class ConfigError(ValueError):
    """Raised when a SimulationConfig is rejected at construction."""


@dataclass
class SimulationConfig:
    """
    Everything an engine and a headless run need to know.

    Validation happens in __post_init__; an invalid configuration never
    survives construction.
    """
    width:                    float = WORLD_WIDTH
    height:                   float = WORLD_HEIGHT
    max_agents:               int   = MAX_AGENTS
    max_resources:            int   = MAX_RESOURCES
    initial_agents:           int   = INITIAL_AGENTS
    initial_resources:        int   = INITIAL_RESOURCES
    resource_spawn_rate:      float = RESOURCE_SPAWN_RATE
    target_duration_minutes:  float = TARGET_MINUTES
    stability_threshold:      float = STABILITY_THRESHOLD
    min_agent_count:          int   = MIN_AGENT_COUNT
    max_agent_count:          int   = MAX_AGENT_COUNT
    use_data_oriented_engine: bool  = True
    speed_multiplier:         float = SPEED_MULTIPLIER
    seed:                     Optional[int] = None
    workers:                  int   = 1
    base_dt:                  float = BASE_DT
    explosion_factor:         float = EXPLOSION_FACTOR
    collapse_steps:           int   = COLLAPSE_STEPS
    stability_window:         int   = STABILITY_WINDOW
    history_interval:         int   = 1

    def __post_init__(self):
        problems = []
        if not self.width > 0 or not self.height > 0:
            problems.append(f"world dimensions must be > 0 (got {self.width}x{self.height})")
        for name in ("max_agents", "max_resources", "initial_agents",
                     "initial_resources", "min_agent_count", "max_agent_count"):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be >= 0")
        if self.max_agents < self.initial_agents:
            problems.append(f"max_agents ({self.max_agents}) < initial_agents ({self.initial_agents})")
        if self.max_resources < self.initial_resources:
            problems.append(f"max_resources ({self.max_resources}) < "
                            f"initial_resources ({self.initial_resources})")
        if self.min_agent_count > self.max_agent_count:
            problems.append("min_agent_count > max_agent_count")
        if not self.target_duration_minutes > 0:
            problems.append("target_duration_minutes must be > 0")
        if not self.speed_multiplier > 0:
            problems.append("speed_multiplier must be > 0")
        if self.resource_spawn_rate < 0:
            problems.append("resource_spawn_rate must be >= 0")
        if not self.base_dt > 0:
            problems.append("base_dt must be > 0")
        if self.workers < 1:
            problems.append("workers must be >= 1")
        if self.seed is not None and self.seed < 0:
            problems.append(f"seed must be >= 0 (got {self.seed})")
        if self.explosion_factor < 1.0:
            problems.append("explosion_factor must be >= 1")
        if self.collapse_steps < 1 or self.stability_window < 1 or self.history_interval < 1:
            problems.append("collapse_steps, stability_window and history_interval must be >= 1")
        if problems:
            raise ConfigError("invalid simulation config: " + "; ".join(problems))

    # ──────────────────────────────────────────────────────────────────────────

    @property
    def target_seconds(self) -> float:
        return self.target_duration_minutes * 60.0

    @property
    def step_dt(self) -> float:
        """Virtual seconds advanced by one headless step."""
        return self.base_dt * self.speed_multiplier

    @property
    def engine_name(self) -> str:
        return "data-oriented" if self.use_data_oriented_engine else "legacy"

    def replace(self, **changes) -> "SimulationConfig":
        """Copy with some fields changed; the copy is validated again."""
        return _dc_replace(self, **changes)

    def as_dict(self) -> dict:
        return asdict(self)
