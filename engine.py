"""
Shared engine core for EvoSim.

EngineBase owns everything the two backends have in common: seeding,
founding the world, resource spawning, the parallel compute phase, the
ordered merge and the statistics. A backend only decides how agents and
resources are laid out in memory and implements the small storage hooks
listed at the bottom of EngineBase.

Per tick:
  1. spawn resources on the spawn timer
  2. snapshot agents/resources into a WorldView, rebuild both grids
  3. decide() every agent in parallel          -> PendingUpdate per agent
  4. advance every resource in parallel          -> deltas, then applied
  5. merge PendingUpdates in ascending agent id  (single thread)
  6. remove dead agents and faded resources, advance the clock
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Optional

import numpy as np

from agent import AgentState, DeathReason
from behavior import (
    Fighter, resolve_combat, reproduction_ready, decide, build_view,
    agent_rng, world_rng, SPAWN_STREAM, OFFSPRING_STREAM, RESOURCE_STREAM,
)
from config import (
    AGENT_START_ENERGY, AGENT_MAX_ENERGY, REPRODUCTION_COST, OFFSPRING_SCATTER,
    SimulationConfig,
)
from genes import GENE_INDEX, NUM_GENES, GeneSet, inherit, random_genes
from scheduler import StepScheduler
from spatial import SpatialGrid, wrap

logger = logging.getLogger(__name__)


@dataclass
class Stats:
    agent_count:    int = 0
    resource_count: int = 0
    total_energy:   float = 0.0
    resource_energy: float = 0.0
    average_age:    float = 0.0
    average_speed:  float = 0.0
    average_size:   float = 0.0
    average_aggression: float = 0.0
    average_sense_range: float = 0.0
    average_energy_efficiency: float = 0.0
    predator_count: int = 0
    max_generation: int = 0
    total_kills:    int = 0
    births:         int = 0
    deaths:         int = 0
    deaths_by_reason: dict = field(default_factory=dict)
    tick:           int = 0
    time:           float = 0.0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AgentRecord:
    """Detached copy of one agent, for renderers and snapshots."""
    id:         int
    generation: int
    parent_id:  Optional[int]
    x:          float
    y:          float
    energy:     float
    age:        float
    state:      AgentState
    predator:   bool
    kills:      int
    genes:      GeneSet


@dataclass(frozen=True)
class ResourceRecord:
    id:         int
    x:          float
    y:          float
    energy:     float
    max_energy: float
    available:  bool
    depleting:  bool


_AVERAGED = ("speed", "size", "aggression", "sense_range", "energy_efficiency")


class EngineBase:
    """Backend-independent half of an engine. Not used directly; see simulation.Simulation."""

    name = "base"

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.width  = config.width
        self.height = config.height
        self.seed   = config.seed if config.seed is not None \
            else int(np.random.SeedSequence().entropy % (2 ** 63))
        self.scheduler  = StepScheduler(config.workers)
        self.agent_grid = SpatialGrid(self.width, self.height)
        self.res_grid   = SpatialGrid(self.width, self.height)
        self.reset()
        logger.info("%s engine ready: %d agents, %d resources, seed=%d, workers=%d",
                    self.name, self.agent_count, self.resource_count,
                    self.seed, config.workers)

    # ──────────────────────────────────────────────────────────────────────────
    # Public contract
    # ──────────────────────────────────────────────────────────────────────────

    def reset(self):
        """Clear the world and repopulate it from the configuration and seed."""
        cfg = self.config
        self._clear()
        self.tick = 0
        self.time = 0.0
        self.births = 0
        self.total_kills = 0
        self.max_generation = 0
        self.deaths_by_reason = {r.name.lower(): 0 for r in DeathReason}
        self._next_agent_id = 0
        self._next_resource_id = 0
        self._spawn_timer = 0.0

        rng = world_rng(self.seed, 0)
        rx = rng.uniform(0.0, self.width, cfg.initial_resources)
        ry = rng.uniform(0.0, self.height, cfg.initial_resources)
        for x, y in zip(rx, ry):
            self._spawn_resource(float(x), float(y), mature=True)
        ax = rng.uniform(0.0, self.width, cfg.initial_agents)
        ay = rng.uniform(0.0, self.height, cfg.initial_agents)
        for x, y in zip(ax, ay):
            self.add_agent(float(x), float(y))

    def add_agent(self, x: float, y: float, genes: GeneSet = None) -> bool:
        """Insert a founder agent (random genes unless given). False when at max_agents."""
        if self.agent_count >= self.config.max_agents:
            return False
        x, y = wrap(x, y, self.width, self.height)
        aid = self._next_agent_id
        self._next_agent_id += 1
        rng = agent_rng(self.seed, self.tick, aid, SPAWN_STREAM)
        if genes is None:
            genes = random_genes(rng)
        self._insert_agent(aid, x, y, genes, rng, 0, None, AGENT_START_ENERGY)
        return True

    def add_resource(self, x: float, y: float) -> bool:
        """Insert a freshly spawned (fading-in) resource. False when at max_resources."""
        return self._spawn_resource(x, y, mature=False)

    def step(self, dt: float) -> Stats:
        if not dt > 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.tick += 1
        self._spawn_resources(dt)

        view = build_view(self.tick, self.seed, dt, self.width, self.height,
                          self._agent_columns(), self._resource_columns(),
                          self.agent_grid, self.res_grid)
        updates = self.scheduler.map(decide, len(view), view)
        self._apply_resources(self._compute_resources(dt), dt)

        births, deaths = self.births, self.deaths
        self._merge(updates, view)
        self._remove_dead()
        self._remove_faded()
        self.time += dt
        logger.debug("tick %d: %d agents, +%d births, +%d deaths",
                     self.tick, self.agent_count, self.births - births, self.deaths - deaths)
        return self.get_stats()

    def get_stats(self) -> Stats:
        a = self._agent_columns()
        r = self._resource_columns()
        genes = np.asarray(a["genes"], dtype=np.float64).reshape(-1, NUM_GENES)
        n = len(a["ids"])

        def mean(values) -> float:
            return float(np.mean(values)) if n else 0.0

        averages = {f"average_{g}": mean(genes[:, GENE_INDEX[g]]) for g in _AVERAGED}
        return Stats(
            agent_count=n,
            resource_count=len(r["ids"]),
            total_energy=float(np.sum(a["energy"])),
            resource_energy=float(np.sum(r["energy"])),
            average_age=mean(a["age"]),
            predator_count=int(np.count_nonzero(a["predator"])),
            max_generation=self.max_generation,
            total_kills=self.total_kills,
            births=self.births,
            deaths=self.deaths,
            deaths_by_reason=dict(self.deaths_by_reason),
            tick=self.tick,
            time=self.time,
            **averages,
        )

    @property
    def deaths(self) -> int:
        return sum(self.deaths_by_reason.values())

    def close(self):
        self.scheduler.close()

    # ──────────────────────────────────────────────────────────────────────────
    # Spawning
    # ──────────────────────────────────────────────────────────────────────────

    def _spawn_resource(self, x: float, y: float, mature: bool) -> bool:
        if self.resource_count >= self.config.max_resources:
            return False
        x, y = wrap(x, y, self.width, self.height)
        rid = self._next_resource_id
        self._next_resource_id += 1
        self._insert_resource(rid, x, y, agent_rng(self.seed, self.tick, rid, RESOURCE_STREAM), mature)
        return True

    def _spawn_resources(self, dt: float):
        rate = self.config.resource_spawn_rate
        if rate <= 0.0:
            return
        interval = 1.0 / rate
        self._spawn_timer += dt
        rng = world_rng(self.seed, self.tick)
        while self._spawn_timer >= interval:
            self._spawn_timer -= interval
            self.add_resource(rng.uniform(0.0, self.width), rng.uniform(0.0, self.height))

    # ──────────────────────────────────────────────────────────────────────────
    # Merge
    # ──────────────────────────────────────────────────────────────────────────

    def _merge(self, updates: list, view):
        """
        Apply pending updates in ascending agent id. Every id an update names
        is checked against the live world before use; a stale reference
        drops the agent back to SEEKING.
        """
        killed, mated = set(), set()
        for row, up in enumerate(updates):
            aid = up.agent_id
            if aid in killed:
                continue
            # metabolism lands as a delta on the live energy
            energy = self._get(aid, "energy") + (up.energy - float(view.energy[row]))
            self._write(aid, up, energy)
            if up.death == DeathReason.OLD_AGE:
                self._kill(aid, DeathReason.OLD_AGE, killed)
                continue
            if energy <= 0.0:
                self._kill(aid, DeathReason.STARVATION, killed)
                continue
            if aid in mated:
                # already paid as the partner of a lower id this tick
                self._set(aid, "state", AgentState.REPRODUCING)
                continue

            if up.state == AgentState.FEEDING:
                self._feed(aid, up.resource_id)
            elif up.state == AgentState.FIGHTING:
                self._fight(aid, up.target_id, killed)
            elif up.state == AgentState.REPRODUCING:
                self._reproduce(aid, up.mate_id, killed, mated)

    def _kill(self, aid: int, reason: DeathReason, killed: set):
        self._set(aid, "energy", 0.0)
        self.deaths_by_reason[reason.name.lower()] += 1
        killed.add(aid)

    def _feed(self, aid: int, rid):
        if rid is None or not self._resource_available(rid):
            self._set(aid, "state", AgentState.SEEKING)
            return
        taken = self._bite(rid)
        energy = self._get(aid, "energy")
        if energy < AGENT_MAX_ENERGY:
            gain = taken * self._genes(aid).energy_efficiency
            self._set(aid, "energy", min(energy + gain, AGENT_MAX_ENERGY))

    def _fighter(self, aid: int) -> Fighter:
        return Fighter(aid, float(self._get(aid, "energy")),
                       bool(self._get(aid, "predator")), self._genes(aid))

    def _fight(self, aid: int, target_id, killed: set):
        if target_id is None or target_id in killed or not self._has_agent(target_id):
            self._set(aid, "state", AgentState.SEEKING)
            return
        outcome = resolve_combat(self._fighter(aid), self._fighter(target_id))
        winner = outcome.winner_id
        self._set(winner, "energy", self._get(winner, "energy") + outcome.gain)
        self._set(winner, "kills", self._get(winner, "kills") + 1)
        self.total_kills += 1
        reason = DeathReason.KILLED_BY_PREDATOR if outcome.predation else DeathReason.COMBAT
        self._kill(outcome.loser_id, reason, killed)

    def _ready(self, aid: int) -> bool:
        return bool(reproduction_ready(self._get(aid, "energy"), self._get(aid, "age"),
                                       self._get(aid, "last_reproduction"),
                                       self._genes(aid).reproduction_threshold))

    def _reproduce(self, aid: int, mate_id, killed: set, mated: set):
        ok = (mate_id is not None and aid not in mated and mate_id not in mated
              and mate_id not in killed and self._has_agent(mate_id)
              and bool(self._get(aid, "predator")) == bool(self._get(mate_id, "predator"))
              and self._ready(aid) and self._ready(mate_id))
        if not ok:
            self._set(aid, "state", AgentState.SEEKING)
            return

        child_energy = 0.0
        for pid in (aid, mate_id):
            energy = self._get(pid, "energy")
            cost = energy * REPRODUCTION_COST
            self._set(pid, "energy", energy - cost)
            self._set(pid, "last_reproduction", self._get(pid, "age"))
            self._set(pid, "state", AgentState.REPRODUCING)
            child_energy += cost
            mated.add(pid)

        if self.agent_count >= self.config.max_agents:
            self.deaths_by_reason[DeathReason.POPULATION_CAP.name.lower()] += 1
            return

        rng = agent_rng(self.seed, self.tick, aid, OFFSPRING_STREAM)
        genes = inherit(self._genes(aid), self._genes(mate_id), rng)
        x = self._get(aid, "x") + rng.uniform(-OFFSPRING_SCATTER, OFFSPRING_SCATTER)
        y = self._get(aid, "y") + rng.uniform(-OFFSPRING_SCATTER, OFFSPRING_SCATTER)
        x, y = wrap(x, y, self.width, self.height)
        generation = max(int(self._get(aid, "generation")), int(self._get(mate_id, "generation"))) + 1
        cid = self._next_agent_id
        self._next_agent_id += 1
        self._insert_agent(cid, x, y, genes, rng, generation, aid, child_energy)
        self.births += 1
        self.max_generation = max(self.max_generation, generation)

    # ──────────────────────────────────────────────────────────────────────────
    # Storage hooks (implemented by each backend)
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def agent_count(self) -> int:
        raise NotImplementedError

    @property
    def resource_count(self) -> int:
        raise NotImplementedError

    def agents(self) -> list:
        """AgentRecords in ascending id."""
        raise NotImplementedError

    def resources(self) -> list:
        """ResourceRecords in ascending id."""
        raise NotImplementedError

    def _clear(self):
        raise NotImplementedError

    def _insert_agent(self, aid, x, y, genes, rng, generation, parent_id, energy):
        raise NotImplementedError

    def _insert_resource(self, rid, x, y, rng, mature):
        raise NotImplementedError

    def _agent_columns(self) -> dict:
        raise NotImplementedError

    def _resource_columns(self) -> dict:
        raise NotImplementedError

    def _has_agent(self, aid) -> bool:
        raise NotImplementedError

    def _get(self, aid, name):
        raise NotImplementedError

    def _set(self, aid, name, value):
        raise NotImplementedError

    def _genes(self, aid) -> GeneSet:
        raise NotImplementedError

    def _write(self, aid, update, energy):
        raise NotImplementedError

    def _resource_available(self, rid) -> bool:
        raise NotImplementedError

    def _bite(self, rid) -> float:
        raise NotImplementedError

    def _compute_resources(self, dt):
        raise NotImplementedError

    def _apply_resources(self, result, dt):
        raise NotImplementedError

    def _remove_dead(self):
        raise NotImplementedError

    def _remove_faded(self):
        raise NotImplementedError
