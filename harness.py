"""
Parameter search harness for EvoSim.

SweepHarness runs one HeadlessRunner per candidate configuration, keeps every
result, and ranks them by quality score. Two drivers are built in:

  run(candidates)          evaluate a list (e.g. grid()) with optional early accept
  optimize(base, ...)      random local search around the best config so far
"""

import itertools
import logging
from dataclasses import dataclass

import numpy as np

from config import (
    SimulationConfig, SWEEP_AGENT_COUNTS, SWEEP_RESOURCE_COUNTS, EARLY_ACCEPT_SCORE,
)
from headless import Diagnostics, HeadlessRunner

logger = logging.getLogger(__name__)

# Pass/fail band and search perturbations
PASS_MIN_RATIO      = 0.3     # final / initial agents
PASS_MAX_RATIO      = 3.0
PASS_MIN_COMPLETION = 0.8     # virtual seconds / target
DECLINE_RATIO       = 0.5
GROWTH_RATIO        = 2.0
GOOD_GENERATIONS    = 2.0
COUNT_JITTER        = 0.2     # +-20% on initial counts
SPAWN_JITTER        = (0.5, 1.5)
THRESHOLD_JITTER    = (0.8, 1.2)
MIN_SEARCH_AGENTS   = 50
MIN_SEARCH_RESOURCES = 100


@dataclass
class SweepResult:
    config:      SimulationConfig
    diagnostics: Diagnostics
    score:       float
    passed:      bool
    notes:       str

    def as_row(self) -> dict:
        """Flat summary used for the CSV sweep log."""
        d = self.diagnostics
        return {
            "initial_agents":      self.config.initial_agents,
            "initial_resources":   self.config.initial_resources,
            "resource_spawn_rate": round(self.config.resource_spawn_rate, 4),
            "stability_threshold": round(self.config.stability_threshold, 4),
            "engine":              d.engine,
            "seed":                d.seed,
            "score":               round(self.score, 4),
            "passed":              self.passed,
            "termination":         d.termination,
            "total_steps":         d.total_steps,
            "final_agents":        d.final_stats.agent_count,
            "max_generation":      d.max_generation,
            "stability":           round(d.stability_score, 4),
            "duration_s":          round(d.duration_seconds, 3),
            "notes":               self.notes,
        }


def agent_ratio(diag: Diagnostics, config: SimulationConfig) -> float:
    if config.initial_agents == 0:
        return 0.0
    return diag.final_stats.agent_count / config.initial_agents


def evaluate(diag: Diagnostics, config: SimulationConfig) -> bool:
    """A run passes when it survived, did not explode, kept a sane population and ran (almost) to the end."""
    ratio = agent_ratio(diag, config)
    completion = diag.virtual_seconds / config.target_seconds
    return (not diag.extinction_occurred
            and not diag.population_explosion
            and PASS_MIN_RATIO <= ratio <= PASS_MAX_RATIO
            and completion >= PASS_MIN_COMPLETION)


def describe(diag: Diagnostics, config: SimulationConfig) -> str:
    notes = []
    if diag.extinction_occurred:
        notes.append("Extinction occurred")
    if diag.population_explosion:
        notes.append("Population explosion")
    if diag.resource_collapse:
        notes.append("Resource collapse")
    if diag.is_stable:
        notes.append("Stable population")
    if diag.is_dynamic:
        notes.append("Dynamic population")
    ratio = agent_ratio(diag, config)
    if ratio < DECLINE_RATIO:
        notes.append("Population declined significantly")
    elif ratio > GROWTH_RATIO:
        notes.append("Population grew significantly")
    if diag.average_generation > GOOD_GENERATIONS:
        notes.append("Good evolutionary progress")
    return ", ".join(notes) if notes else "Balanced simulation"


def grid(base: SimulationConfig,
         agent_counts=SWEEP_AGENT_COUNTS,
         resource_counts=SWEEP_RESOURCE_COUNTS) -> list:
    """Cartesian product of initial agent and resource counts over a base config."""
    return [base.replace(initial_agents=a, initial_resources=r,
                         max_agents=max(base.max_agents, a),
                         max_resources=max(base.max_resources, r))
            for a, r in itertools.product(agent_counts, resource_counts)]


class SweepHarness:
    """
    Runs candidates, keeps the results and reports on them.
    """

    def __init__(self, name: str = "sweep", seed: int = None, on_result=None):
        self.name = name
        self.results = []
        self.rng = np.random.default_rng(seed)
        self.on_result = on_result    # called with each SweepResult as it lands

    # ──────────────────────────────────────────────────────────────────────────

    def run_single(self, config: SimulationConfig) -> SweepResult:
        diag = HeadlessRunner(config).run()
        result = SweepResult(config, diag, diag.quality_score,
                             evaluate(diag, config), describe(diag, config))
        self.results.append(result)
        logger.info("[%s] %d/%d agents/resources -> score %.3f (%s)",
                    self.name, config.initial_agents, config.initial_resources,
                    result.score, "pass" if result.passed else "fail")
        if self.on_result:
            self.on_result(result)
        return result

    def run(self, candidates, early_accept: float = None) -> list:
        """
        Evaluate candidates in order. With early_accept set, stop as soon as
        one scores strictly above it. Returns this call's results, best first.
        """
        batch = []
        for config in candidates:
            result = self.run_single(config)
            batch.append(result)
            if early_accept is not None and result.score > early_accept:
                logger.info("[%s] early accept at score %.3f", self.name, result.score)
                break
        return self.ranked(batch)

    def sweep(self, base: SimulationConfig, early_accept: float = EARLY_ACCEPT_SCORE) -> list:
        return self.run(grid(base), early_accept=early_accept)

    def variations(self, base: SimulationConfig, count: int) -> list:
        out = []
        for _ in range(count):
            da = int(base.initial_agents * COUNT_JITTER)
            dr = int(base.initial_resources * COUNT_JITTER)
            agents = max(MIN_SEARCH_AGENTS, base.initial_agents + int(self.rng.integers(-da, da + 1)))
            resources = max(MIN_SEARCH_RESOURCES,
                            base.initial_resources + int(self.rng.integers(-dr, dr + 1)))
            out.append(base.replace(
                initial_agents=agents,
                initial_resources=resources,
                max_agents=max(base.max_agents, agents),
                max_resources=max(base.max_resources, resources),
                resource_spawn_rate=base.resource_spawn_rate * self.rng.uniform(*SPAWN_JITTER),
                stability_threshold=base.stability_threshold * self.rng.uniform(*THRESHOLD_JITTER),
            ))
        return out

    def optimize(self, base: SimulationConfig, iterations: int = 5, variations: int = 4) -> SimulationConfig:
        """Random local search: each round perturbs the best config found so far."""
        best_config, best_score = base, -1.0
        for i in range(iterations):
            for result in self.run(self.variations(best_config, variations)):
                if result.score > best_score:
                    best_config, best_score = result.config, result.score
            logger.info("[%s] iteration %d/%d: best score %.3f", self.name, i + 1, iterations, best_score)
        return best_config

    # ──────────────────────────────────────────────────────────────────────────

    @staticmethod
    def ranked(results) -> list:
        return sorted(results, key=lambda r: r.score, reverse=True)

    @property
    def best(self):
        return self.ranked(self.results)[0] if self.results else None

    def summary(self) -> dict:
        n = len(self.results)
        passed = sum(1 for r in self.results if r.passed)
        best = self.best
        return {
            "name":             self.name,
            "total_runs":       n,
            "successful_runs":  passed,
            "success_rate":     passed / n if n else 0.0,
            "best_score":       best.score if best else 0.0,
            "average_score":    float(np.mean([r.score for r in self.results])) if n else 0.0,
            "average_duration": float(np.mean([r.diagnostics.duration_seconds
                                               for r in self.results])) if n else 0.0,
        }
