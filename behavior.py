"""
Agent behaviour for EvoSim.

A tick is split in two:

  compute  decide(view, row) looks at one agent in a frozen WorldView and
           returns a PendingUpdate. It reads only the view and its own
           seeded RNG stream, so it can run on any worker thread.
  merge    the engine applies PendingUpdates one at a time in ascending
           agent id (see engine.EngineBase._merge). Anything that touches
           another entity (eating, fighting, mating) is settled there.

State priority inside decide():
  Fleeing > Fighting > Hunting > Reproducing > Feeding > Seeking > wander
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from agent import AgentState, DeathReason
from config import (
    AGENT_MAX_AGE, BASE_MOVE_SPEED, FLEE_SPEED_FACTOR, WANDER_TURN,
    SIZE_DRAIN, SPEED_DRAIN, CONTACT_RADIUS,
    COMBAT_THRESHOLD, PREDATION_GAIN, SKIRMISH_GAIN,
    INTELLIGENCE_WEIGHT, STAMINA_WEIGHT,
    RIVAL_RANGE, RIVAL_EDGE, RIVAL_WEAK, RIVAL_ENERGY, RIVAL_AGGRESSION,
    MATE_RANGE, MIN_REPRODUCTION_AGE, REPRODUCTION_COOLDOWN,
)
from genes import GENE_INDEX, NUM_GENES, GeneSet
from spatial import SpatialGrid, torus_delta

SPEED      = GENE_INDEX["speed"]
SENSE      = GENE_INDEX["sense_range"]
SIZE       = GENE_INDEX["size"]
EFFICIENCY = GENE_INDEX["energy_efficiency"]
THRESHOLD  = GENE_INDEX["reproduction_threshold"]
AGGRESSION = GENE_INDEX["aggression"]
HUNT_SPEED = GENE_INDEX["hunting_speed"]
ATTACK     = GENE_INDEX["attack_power"]
TERRITORY  = GENE_INDEX["territory_size"]
METABOLISM = GENE_INDEX["metabolism"]

# RNG stream tags; world draws use agent id 0 with their own tag
WORLD_STREAM     = 0
DECIDE_STREAM    = 1
SPAWN_STREAM     = 2
OFFSPRING_STREAM = 3
RESOURCE_STREAM  = 4


def agent_rng(seed: int, tick: int, agent_id: int, stream: int):
    """Deterministic per-agent, per-tick generator, independent of threading."""
    return np.random.default_rng([seed, tick, agent_id, stream])


def world_rng(seed: int, tick: int):
    return np.random.default_rng([seed, tick, 0, WORLD_STREAM])


# ──────────────────────────────────────────────────────────────────────────────
# Vectorisable physiology
# ──────────────────────────────────────────────────────────────────────────────

def metabolic_cost(gene_values, dt):
    """Energy burned in dt. gene_values may be one row or a (N, genes) matrix."""
    g = np.asarray(gene_values)
    drain = g[..., SIZE] * SIZE_DRAIN + g[..., SPEED] * SPEED_DRAIN
    return drain * g[..., METABOLISM] / g[..., EFFICIENCY] * dt


def reproduction_ready(energy, age, last_reproduction, threshold):
    return ((energy > threshold)
            & (age >= MIN_REPRODUCTION_AGE)
            & (age - last_reproduction >= REPRODUCTION_COOLDOWN))


def combat_drive(gene_values) -> float:
    g = gene_values
    return float(g[SIZE] * g[AGGRESSION] * g[ATTACK])


# ──────────────────────────────────────────────────────────────────────────────
# Snapshot and pending update
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WorldView:
    """
    Read-only snapshot of one tick, shared by every worker.
    Agent columns are ordered by ascending id; resource columns likewise.
    """
    tick:   int
    seed:   int
    dt:     float
    width:  float
    height: float
    ids:    np.ndarray
    x:      np.ndarray
    y:      np.ndarray
    vx:     np.ndarray
    vy:     np.ndarray
    energy: np.ndarray
    drained: np.ndarray          # energy after this tick's metabolism
    age:    np.ndarray
    last_reproduction: np.ndarray
    predator: np.ndarray
    genes:  np.ndarray
    agent_grid: SpatialGrid
    res_ids: np.ndarray
    res_x:   np.ndarray
    res_y:   np.ndarray
    res_energy: np.ndarray
    res_available: np.ndarray
    res_grid: SpatialGrid

    def __len__(self):
        return len(self.ids)


def build_view(tick, seed, dt, width, height, agents: dict, resources: dict,
               agent_grid: SpatialGrid, res_grid: SpatialGrid) -> WorldView:
    """
    Freeze column dicts into a WorldView and rebuild both grids from it.
    `agents` needs ids, x, y, vx, vy, energy, age, last_reproduction,
    predator, genes; `resources` needs ids, x, y, energy, available.
    """
    cols = {k: np.array(v) for k, v in agents.items()}
    cols["genes"] = cols["genes"].reshape(-1, NUM_GENES)
    cols["drained"] = cols["energy"] - metabolic_cost(cols["genes"], dt)
    res = {"res_" + k: np.array(v) for k, v in resources.items()}
    for arr in list(cols.values()) + list(res.values()):
        arr.setflags(write=False)
    agent_grid.rebuild(cols["x"], cols["y"])
    res_grid.rebuild(res["res_x"], res["res_y"])
    return WorldView(
        tick=tick, seed=seed, dt=dt, width=width, height=height,
        agent_grid=agent_grid, res_grid=res_grid, **cols, **res)


@dataclass
class PendingUpdate:
    agent_id: int
    x:  float
    y:  float
    vx: float
    vy: float
    energy: float
    age:    float
    state:  AgentState = AgentState.SEEKING
    death:  Optional[DeathReason] = None
    resource_id: Optional[int] = None
    target_id:   Optional[int] = None
    mate_id:     Optional[int] = None


# ──────────────────────────────────────────────────────────────────────────────
# Decision
# ──────────────────────────────────────────────────────────────────────────────

def _steer(up: PendingUpdate, dx: float, dy: float, speed: float):
    norm = math.hypot(dx, dy)
    if norm > 0.0:
        up.vx, up.vy = dx / norm * speed, dy / norm * speed


def _move(up: PendingUpdate, view: WorldView, limit: Optional[float] = None):
    sx, sy = up.vx * view.dt, up.vy * view.dt
    if limit is not None:
        length = math.hypot(sx, sy)
        if length > limit:
            sx, sy = sx / length * limit, sy / length * limit
    up.x = (up.x + sx) % view.width
    up.y = (up.y + sy) % view.height


def _flee(up: PendingUpdate, view: WorldView, t: int, speed: float) -> PendingUpdate:
    dx, dy = torus_delta(view.x[t], view.y[t], up.x, up.y, view.width, view.height)
    _steer(up, dx, dy, speed)
    up.state = AgentState.FLEEING
    _move(up, view)
    return up


def size_up_predators(view: WorldView, row: int, rows, dist):
    """
    Compare a predator with the predators within RIVAL_RANGE of its sense range.

    Returns (threat, rival) as positions into rows, either may be None. A
    threat is clearly bigger and better armed; a rival is clearly smaller,
    weaker in attack and carries enough energy to be worth a fight.
    """
    g = view.genes[row]
    energy = float(view.energy[row])
    near = np.nonzero(view.predator[rows] & (dist <= RIVAL_RANGE * g[SENSE]))[0]
    rival = None
    for k in near:
        o = view.genes[rows[k]]
        size_ratio = o[SIZE] / g[SIZE]
        attack_ratio = g[ATTACK] / o[ATTACK]
        if size_ratio > RIVAL_EDGE and attack_ratio < RIVAL_WEAK:
            return int(k), None
        if (rival is None and size_ratio < RIVAL_WEAK and attack_ratio > RIVAL_EDGE
                and view.energy[rows[k]] / energy > RIVAL_ENERGY
                and g[AGGRESSION] > RIVAL_AGGRESSION):
            rival = int(k)
    return None, rival


def decide(view: WorldView, row: int) -> PendingUpdate:
    """Compute one agent's next state from the snapshot. Never mutates the view."""
    aid = int(view.ids[row])
    g = view.genes[row]
    x, y = float(view.x[row]), float(view.y[row])
    up = PendingUpdate(
        agent_id=aid, x=x, y=y,
        vx=float(view.vx[row]), vy=float(view.vy[row]),
        energy=float(view.drained[row]), age=float(view.age[row]) + view.dt,
    )
    if up.energy <= 0.0:
        up.death = DeathReason.STARVATION
        return up
    if up.age > AGENT_MAX_AGE:
        up.death = DeathReason.OLD_AGE
        return up

    predator = bool(view.predator[row])
    sense = float(g[SENSE])
    cruise = float(g[SPEED]) * BASE_MOVE_SPEED
    reach = max(sense, MATE_RANGE, CONTACT_RADIUS, float(g[TERRITORY]) if predator else 0.0)

    rows, dist = view.agent_grid.query(x, y, reach)
    keep = rows != row
    rows, dist = rows[keep], dist[keep]
    order = np.lexsort((view.ids[rows], dist))
    rows, dist = rows[order], dist[order]
    others_pred = view.predator[rows]

    # Prey bolts from the nearest sensed predator
    if not predator:
        threats = np.nonzero(others_pred & (dist <= sense))[0]
        if len(threats):
            return _flee(up, view, rows[threats[0]], cruise * FLEE_SPEED_FACTOR)

    # Predators back off from a stronger predator and single out a weaker one
    rival = None
    if predator:
        threat, rival = size_up_predators(view, row, rows, dist)
        if threat is not None:
            return _flee(up, view, rows[threat], cruise * FLEE_SPEED_FACTOR)

    # Contact: predators strike prey, anyone aggressive enough strikes anyone
    drive = combat_drive(g)
    for k in np.nonzero(dist <= CONTACT_RADIUS)[0]:
        if (predator and not others_pred[k]) or k == rival or drive >= COMBAT_THRESHOLD:
            up.state = AgentState.FIGHTING
            up.target_id = int(view.ids[rows[k]])
            return up

    if predator:
        prey = np.nonzero(~others_pred & (dist <= g[TERRITORY]))[0]
        k = prey[0] if len(prey) else rival
        if k is not None:
            t = rows[k]
            dx, dy = torus_delta(x, y, view.x[t], view.y[t], view.width, view.height)
            _steer(up, dx, dy, cruise * float(g[HUNT_SPEED]))
            up.state = AgentState.HUNTING
            up.target_id = int(view.ids[t])
            _move(up, view, limit=float(dist[k]))
            return up

    if reproduction_ready(up.energy, up.age, view.last_reproduction[row], g[THRESHOLD]):
        close = rows[(dist <= MATE_RANGE) & (others_pred == predator)]
        ready = reproduction_ready(view.drained[close], view.age[close] + view.dt,
                                   view.last_reproduction[close], view.genes[close, THRESHOLD])
        if np.any(ready):
            up.state = AgentState.REPRODUCING
            up.mate_id = int(view.ids[close[np.argmax(ready)]])
            return up

    res_rows, res_dist = view.res_grid.query(x, y, sense)
    ok = view.res_available[res_rows]
    res_rows, res_dist = res_rows[ok], res_dist[ok]
    if len(res_rows):
        k = np.lexsort((view.res_ids[res_rows], res_dist))[0]
        r = res_rows[k]
        if res_dist[k] <= CONTACT_RADIUS:
            up.state = AgentState.FEEDING
            up.resource_id = int(view.res_ids[r])
            return up
        dx, dy = torus_delta(x, y, view.res_x[r], view.res_y[r], view.width, view.height)
        _steer(up, dx, dy, cruise)
        _move(up, view, limit=float(res_dist[k]))
        return up

    rng = agent_rng(view.seed, view.tick, aid, DECIDE_STREAM)
    heading = math.atan2(up.vy, up.vx) + rng.uniform(-WANDER_TURN, WANDER_TURN)
    up.vx, up.vy = math.cos(heading) * cruise, math.sin(heading) * cruise
    _move(up, view)
    return up


# ──────────────────────────────────────────────────────────────────────────────
# Combat
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Fighter:
    agent_id: int
    energy:   float
    predator: bool
    genes:    GeneSet


@dataclass(frozen=True)
class CombatOutcome:
    winner_id: int
    loser_id:  int
    gain:      float
    predation: bool


def combat_power(attacker: Fighter, opponent: Fighter) -> float:
    a, o = attacker.genes, opponent.genes
    attack = a.attack_power * a.size * attacker.energy * 0.01
    effective = attack / (o.defense * o.size + 1.0)
    return effective * (1.0 + INTELLIGENCE_WEIGHT * a.intelligence + STAMINA_WEIGHT * a.stamina)


def resolve_combat(a: Fighter, b: Fighter) -> CombatOutcome:
    """
    Deterministic fight. Higher power wins; equal power goes to the lower id.
    The winner gains a share of the loser's pre-fight energy.
    """
    pa, pb = combat_power(a, b), combat_power(b, a)
    if pa > pb or (pa == pb and a.agent_id < b.agent_id):
        winner, loser = a, b
    else:
        winner, loser = b, a
    predation = winner.predator and not loser.predator
    share = PREDATION_GAIN if predation else SKIRMISH_GAIN
    return CombatOutcome(winner.agent_id, loser.agent_id, share * loser.energy, predation)
