"""
Headless runner for EvoSim.

Drives a Simulation at base_dt * speed_multiplier per step until the target
virtual duration is reached or the run ends early:

  extinction  no agents left
  explosion   agent_count > explosion_factor * max_agents
  collapse    no resources for collapse_steps consecutive steps

Every step's stats feed the history buffers; at the end the run is scored
(stability, dynamism, quality) into a Diagnostics report.
"""

import logging
import math
import time
from dataclasses import dataclass, field, asdict

import numpy as np

from config import (
    SimulationConfig, STABILITY_WINDOW, MIN_HISTORY, DYNAMIC_FRACTION,
    PROGRESS_INTERVAL, QUALITY_WEIGHTS, EXTINCTION_PENALTY, EXPLOSION_PENALTY,
    EVOLUTION_TARGET_GENERATIONS,
)
from engine import Stats
from genes import genetic_diversity
from simulation import Simulation

logger = logging.getLogger(__name__)

COMPLETED  = "completed"
EXTINCTION = "extinction"
EXPLOSION  = "explosion"
COLLAPSE   = "collapse"


@dataclass
class Diagnostics:
    """End-of-run report. Only HeadlessRunner fills this in."""
    duration_seconds: float = 0.0
    steps_per_second: float = 0.0
    total_steps:      int   = 0
    virtual_seconds:  float = 0.0
    final_stats:      Stats = field(default_factory=Stats)
    stability_score:  float = 0.0
    quality_score:    float = 0.0
    is_stable:        bool  = False
    is_dynamic:       bool  = False
    population_history: list = field(default_factory=list)
    energy_history:     list = field(default_factory=list)
    resource_history:   list = field(default_factory=list)
    termination:      str   = COMPLETED
    extinction_occurred:  bool = False
    population_explosion: bool = False
    resource_collapse:    bool = False
    total_births:     int   = 0
    total_deaths:     int   = 0
    total_kills:      int   = 0
    deaths_by_reason: dict  = field(default_factory=dict)
    max_generation:   int   = 0
    average_generation: float = 0.0
    genetic_diversity:  float = 0.0
    engine:           str   = ""
    seed:             int   = 0
    config:           dict  = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ──────────────────────────────────────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────────────────────────────────────

def coefficient_of_variation(values) -> float:
    """std / mean; infinite for an empty or zero-mean series."""
    arr = np.asarray(values, dtype=np.float64)
    if len(arr) == 0:
        return math.inf
    mean = arr.mean()
    if mean <= 0.0:
        return math.inf
    return float(arr.std() / mean)


def stability_score(history, window: int = STABILITY_WINDOW) -> float:
    """
    1 / (1 + CV) of the trailing `window` samples, in [0, 1].
    Zero when there are fewer than MIN_HISTORY samples or the mean is zero.
    """
    recent = list(history)[-window:]
    if len(recent) < MIN_HISTORY:
        return 0.0
    cv = coefficient_of_variation(recent)
    if math.isinf(cv):
        return 0.0
    return 1.0 / (1.0 + cv)


def is_stable(history, threshold: float, window: int = STABILITY_WINDOW) -> bool:
    recent = list(history)[-window:]
    if len(recent) < MIN_HISTORY or recent[-1] <= 0:
        return False
    return coefficient_of_variation(recent) <= threshold


def is_dynamic(history) -> bool:
    """The population moved by more than DYNAMIC_FRACTION of its mean."""
    arr = np.asarray(history, dtype=np.float64)
    if len(arr) < MIN_HISTORY:
        return False
    mean = arr.mean()
    return bool(mean > 0.0 and (arr.max() - arr.min()) > DYNAMIC_FRACTION * mean)


def quality_score(diag: Diagnostics, config: SimulationConfig) -> float:
    """
    Weighted blend of stability, dynamism, population health, evolutionary
    progress and run completion, minus extinction/explosion penalties.
    Clamped to [0, 1].
    """
    count = diag.final_stats.agent_count
    if count == 0:
        health = 0.0
    elif config.min_agent_count <= count <= config.max_agent_count:
        health = 1.0
    else:
        health = 0.5
    parts = {
        "stability":  diag.stability_score,
        "dynamic":    1.0 if diag.is_dynamic else 0.0,
        "health":     health,
        "evolution":  min(1.0, diag.max_generation / EVOLUTION_TARGET_GENERATIONS),
        "completion": min(1.0, diag.virtual_seconds / config.target_seconds),
    }
    score = sum(QUALITY_WEIGHTS[k] * v for k, v in parts.items())
    if diag.extinction_occurred:
        score -= EXTINCTION_PENALTY
    if diag.population_explosion:
        score -= EXPLOSION_PENALTY
    return float(min(1.0, max(0.0, score)))


# ──────────────────────────────────────────────────────────────────────────────
# Runner
# ──────────────────────────────────────────────────────────────────────────────

class HeadlessRunner:

    def __init__(self, config: SimulationConfig = None):
        self.config = config if config is not None else SimulationConfig()
        self.diagnostics = Diagnostics(engine=self.config.engine_name)
        self.simulation = None        # kept after run() for snapshots

    @property
    def target_steps(self) -> int:
        return max(1, int(math.ceil(self.config.target_seconds / self.config.step_dt - 1e-9)))

    def _termination(self, stats: Stats, empty_steps: int):
        cfg = self.config
        if stats.agent_count == 0:
            return EXTINCTION
        # guard only: both engines already cap at max_agents
        if stats.agent_count > cfg.explosion_factor * cfg.max_agents:
            return EXPLOSION
        if empty_steps >= cfg.collapse_steps:
            return COLLAPSE
        return None

    def run(self) -> Diagnostics:
        cfg = self.config
        dt = cfg.step_dt
        target_steps = self.target_steps
        diag = self.diagnostics
        logger.info("headless run: %s engine, %.0fx speed, %.1f min target (%d steps)",
                    cfg.engine_name, cfg.speed_multiplier, cfg.target_duration_minutes, target_steps)

        sim = self.simulation = Simulation(cfg)
        steps, empty = 0, 0
        t0 = time.perf_counter()
        try:
            while steps < target_steps:
                stats = sim.step(dt)
                steps += 1
                if steps % cfg.history_interval == 0:
                    diag.population_history.append(stats.agent_count)
                    diag.energy_history.append(stats.total_energy)
                    diag.resource_history.append(stats.resource_count)
                empty = empty + 1 if stats.resource_count == 0 else 0

                reason = self._termination(stats, empty)
                if reason is not None:
                    diag.termination = reason
                    logger.info("early termination at step %d: %s", steps, reason)
                    break
                if steps % PROGRESS_INTERVAL == 0:
                    rate = steps / max(time.perf_counter() - t0, 1e-9)
                    logger.info("progress: %.1f%% (%d/%d steps, %.0f steps/sec)",
                                100.0 * steps / target_steps, steps, target_steps, rate)
            elapsed = time.perf_counter() - t0
            final = sim.get_stats()
            records = sim.agents()
            diag.seed = sim.seed
            diag.virtual_seconds = sim.time
        finally:
            sim.close()

        diag.duration_seconds = elapsed
        diag.total_steps = steps
        diag.steps_per_second = steps / elapsed if elapsed > 0 else 0.0
        self._finalize(final, records)
        logger.info("run finished: %s after %d steps, %d agents, quality %.3f",
                    diag.termination, steps, final.agent_count, diag.quality_score)
        return diag

    def _finalize(self, final: Stats, records: list):
        cfg = self.config
        diag = self.diagnostics
        diag.final_stats = final
        diag.config = cfg.as_dict()
        diag.total_births = final.births
        diag.total_deaths = final.deaths
        diag.total_kills = final.total_kills
        diag.deaths_by_reason = dict(final.deaths_by_reason)
        diag.max_generation = final.max_generation
        if records:
            diag.average_generation = float(np.mean([r.generation for r in records]))
            genes = np.array([r.genes.values for r in records])
            diag.genetic_diversity = genetic_diversity(genes, rng=np.random.default_rng(diag.seed))

        diag.extinction_occurred = final.agent_count == 0
        diag.population_explosion = (diag.termination == EXPLOSION
                                     or final.agent_count > cfg.max_agent_count)
        diag.resource_collapse = diag.termination == COLLAPSE

        history = diag.population_history
        diag.stability_score = stability_score(history, cfg.stability_window)
        diag.is_stable = is_stable(history, cfg.stability_threshold, cfg.stability_window)
        diag.is_dynamic = is_dynamic(history)
        diag.quality_score = quality_score(diag, cfg)
