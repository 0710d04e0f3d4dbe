"""
Resources for EvoSim.

A resource is a regenerating food patch. It fades in after spawning, grows
towards a target energy, regenerates slowly when nearly empty and, once
drained, is flagged as depleting and fades out before removal.

The growth/fade law (advance_resource) is written with numpy ufuncs so the
same function serves a single Resource and a whole column of resources in
the data-oriented engine.
"""

import numpy as np

from config import (
    FEED_AMOUNT, RESOURCE_AVAILABLE_MIN, RESOURCE_LOW_ENERGY,
    SPAWN_FADE_RATE, DEPLETE_FADE_RATE,
)

TARGET_ENERGY_RANGE = (20.0, 80.0)
MAX_ENERGY_RANGE    = (50.0, 150.0)
GROWTH_RATE_RANGE   = (0.5, 2.0)
REGEN_RATE_RANGE    = (0.1, 0.5)
SNAP_TOLERANCE      = 0.1


def draw_resource_traits(rng) -> tuple:
    """(target_energy, max_energy, growth_rate, regen_rate) for a new resource."""
    target = rng.uniform(*TARGET_ENERGY_RANGE)
    max_energy = rng.uniform(*MAX_ENERGY_RANGE)
    growth = rng.uniform(*GROWTH_RATE_RANGE)
    regen = rng.uniform(*REGEN_RATE_RANGE)
    return float(target), float(max_energy), float(growth), float(regen)


def advance_resource(energy, target, max_energy, growth_rate, regen_rate,
                     spawn_fade, depleting, deplete_fade, dt):
    """
    One tick of the resource law. Works element-wise on scalars or arrays.
    Returns (energy, spawn_fade, deplete_fade).
    """
    energy = np.asarray(energy, dtype=np.float64)
    spawn_fade = np.asarray(spawn_fade, dtype=np.float64)
    deplete_fade = np.asarray(deplete_fade, dtype=np.float64)
    depleting = np.asarray(depleting, dtype=bool)

    spawn_fade = np.where(spawn_fade < 1.0,
                          np.minimum(spawn_fade + dt * SPAWN_FADE_RATE, 1.0), spawn_fade)
    deplete_fade = np.where(depleting,
                            np.minimum(deplete_fade + dt * DEPLETE_FADE_RATE, 1.0), deplete_fade)
    growing = (spawn_fade >= 1.0) & np.logical_not(depleting)

    # Ease towards the target energy
    diff = target - energy
    step = growth_rate * dt
    eased = np.where(np.abs(diff) < step, target, energy + np.sign(diff) * step)
    energy = np.where(growing & (np.abs(diff) > SNAP_TOLERANCE), eased, energy)

    # Natural growth towards the cap
    grown = np.minimum(energy + growth_rate * dt * 0.5, max_energy)
    energy = np.where(growing & (energy < max_energy), grown, energy)

    # Slow regeneration when nearly empty
    energy = np.where((energy < RESOURCE_LOW_ENERGY) & np.logical_not(depleting),
                      energy + regen_rate * dt, energy)
    return energy, spawn_fade, deplete_fade


def resource_available(energy, spawn_fade, depleting):
    """Whether a resource can be eaten right now (scalar or element-wise)."""
    return ((np.asarray(energy) > RESOURCE_AVAILABLE_MIN)
            & (np.asarray(spawn_fade) > 0.5)
            & np.logical_not(depleting))


def take_bite(energy: float, amount: float = FEED_AMOUNT) -> tuple:
    """Return (taken, remaining, now_depleted) for one bite."""
    taken = min(amount, energy)
    remaining = energy - taken
    if remaining <= 0.0:
        return taken, 0.0, True
    return taken, remaining, False


class Resource:
    """
    A single food patch (legacy, one object per resource).
    """
    __slots__ = (
        "id", "x", "y", "energy", "max_energy", "target_energy",
        "growth_rate", "regen_rate", "age",
        "spawn_fade", "depleting", "deplete_fade",
    )

    def __init__(self, rid: int, x: float, y: float, rng, mature: bool = False):
        self.id = rid
        self.x = x
        self.y = y
        (self.target_energy, self.max_energy,
         self.growth_rate, self.regen_rate) = draw_resource_traits(rng)
        # founders start fully grown; spawned patches grow from nothing
        self.energy     = self.target_energy if mature else 0.0
        self.spawn_fade = 1.0 if mature else 0.0
        self.age        = 0.0
        self.depleting  = False
        self.deplete_fade = 0.0

    # ──────────────────────────────────────────────────────────────────────────

    def compute_update(self, dt: float) -> tuple:
        """Pure: the (energy, spawn_fade, deplete_fade) this resource moves to."""
        energy, spawn_fade, deplete_fade = advance_resource(
            self.energy, self.target_energy, self.max_energy,
            self.growth_rate, self.regen_rate,
            self.spawn_fade, self.depleting, self.deplete_fade, dt)
        return float(energy), float(spawn_fade), float(deplete_fade)

    def apply_update(self, update: tuple, dt: float):
        self.energy, self.spawn_fade, self.deplete_fade = update
        self.age += dt

    def consume(self, amount: float = FEED_AMOUNT) -> float:
        """Take one bite; flags the resource as depleting when drained."""
        taken, self.energy, drained = take_bite(self.energy, amount)
        if drained and not self.depleting:
            self.depleting = True
            self.deplete_fade = 0.0
        return taken

    @property
    def available(self) -> bool:
        return bool(resource_available(self.energy, self.spawn_fade, self.depleting))

    @property
    def faded_out(self) -> bool:
        return self.depleting and self.deplete_fade >= 1.0
