"""
Data-oriented EvoSim backend: agents and resources as parallel numpy arrays.

Each population is a fixed block of `max_*` slots. A slot is live while its
`alive` flag is set; removed entities leave a free slot behind ("graveyard")
and the lowest free slot is reused first. Stable ids map to slots through a
dict, so a removed id simply stops resolving.

Resource growth runs as one vectorised advance_resource call per worker
partition instead of one call per resource.
"""

import heapq

import numpy as np

from agent import AgentState, spawn_velocity
from engine import AgentRecord, EngineBase, ResourceRecord
from genes import GeneSet, NUM_GENES
from resources import advance_resource, draw_resource_traits, resource_available, take_bite


class _Slots:
    """Id -> slot bookkeeping over a fixed block of array rows."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.alive = np.zeros(capacity, dtype=bool)
        self.ids = np.full(capacity, -1, dtype=np.int64)
        self.index = {}
        self._free = list(range(capacity))
        heapq.heapify(self._free)

    def __len__(self):
        return len(self.index)

    def take(self, eid: int) -> int:
        slot = heapq.heappop(self._free)
        self.alive[slot] = True
        self.ids[slot] = eid
        self.index[eid] = slot
        return slot

    def release(self, slots):
        for slot in slots:
            slot = int(slot)
            del self.index[int(self.ids[slot])]
            self.alive[slot] = False
            self.ids[slot] = -1
            heapq.heappush(self._free, slot)

    def live(self) -> np.ndarray:
        """Live slots ordered by ascending id."""
        slots = np.flatnonzero(self.alive)
        return slots[np.argsort(self.ids[slots], kind="stable")]


class DataOrientedEngine(EngineBase):

    name = "data-oriented"

    @property
    def agent_count(self) -> int:
        return len(self._a)

    @property
    def resource_count(self) -> int:
        return len(self._r)

    def agents(self) -> list:
        out = []
        for s in self._a.live():
            parent = int(self.parent[s])
            out.append(AgentRecord(
                int(self._a.ids[s]), int(self.generation[s]), parent if parent >= 0 else None,
                float(self.x[s]), float(self.y[s]), float(self.energy[s]), float(self.age[s]),
                AgentState(int(self.state[s])), bool(self.predator[s]), int(self.kills[s]),
                GeneSet(self.genes[s]),
            ))
        return out

    def resources(self) -> list:
        out = []
        for s in self._r.live():
            out.append(ResourceRecord(
                int(self._r.ids[s]), float(self.rx[s]), float(self.ry[s]),
                float(self.r_energy[s]), float(self.r_max[s]),
                bool(resource_available(self.r_energy[s], self.r_spawn_fade[s], self.r_depleting[s])),
                bool(self.r_depleting[s]),
            ))
        return out

    # ──────────────────────────────────────────────────────────────────────────

    def _clear(self):
        n = self.config.max_agents
        self._a = _Slots(n)
        self.x       = np.zeros(n)
        self.y       = np.zeros(n)
        self.vx      = np.zeros(n)
        self.vy      = np.zeros(n)
        self.energy  = np.zeros(n)
        self.age     = np.zeros(n)
        self.last_reproduction = np.full(n, -np.inf)
        self.state   = np.zeros(n, dtype=np.int8)
        self.generation = np.zeros(n, dtype=np.int64)
        self.parent  = np.full(n, -1, dtype=np.int64)
        self.predator = np.zeros(n, dtype=bool)
        self.kills   = np.zeros(n, dtype=np.int64)
        self.genes   = np.zeros((n, NUM_GENES))
        self._fields = {
            "x": self.x, "y": self.y, "vx": self.vx, "vy": self.vy,
            "energy": self.energy, "age": self.age,
            "last_reproduction": self.last_reproduction, "state": self.state,
            "generation": self.generation, "predator": self.predator, "kills": self.kills,
        }

        m = self.config.max_resources
        self._r = _Slots(m)
        self.rx = np.zeros(m)
        self.ry = np.zeros(m)
        self.r_energy = np.zeros(m)
        self.r_max    = np.zeros(m)
        self.r_target = np.zeros(m)
        self.r_growth = np.zeros(m)
        self.r_regen  = np.zeros(m)
        self.r_age    = np.zeros(m)
        self.r_spawn_fade   = np.zeros(m)
        self.r_depleting    = np.zeros(m, dtype=bool)
        self.r_deplete_fade = np.zeros(m)

    def _insert_agent(self, aid, x, y, genes, rng, generation, parent_id, energy):
        s = self._a.take(aid)
        self.x[s], self.y[s] = x, y
        self.vx[s], self.vy[s] = spawn_velocity(genes, rng)
        self.energy[s] = energy
        self.age[s] = 0.0
        self.last_reproduction[s] = -np.inf
        self.state[s] = AgentState.SEEKING
        self.generation[s] = generation
        self.parent[s] = -1 if parent_id is None else parent_id
        self.predator[s] = genes.predator_type
        self.kills[s] = 0
        self.genes[s] = genes.values

    def _insert_resource(self, rid, x, y, rng, mature):
        s = self._r.take(rid)
        self.rx[s], self.ry[s] = x, y
        target, max_energy, growth, regen = draw_resource_traits(rng)
        self.r_target[s], self.r_max[s] = target, max_energy
        self.r_growth[s], self.r_regen[s] = growth, regen
        self.r_energy[s] = target if mature else 0.0
        self.r_spawn_fade[s] = 1.0 if mature else 0.0
        self.r_age[s] = 0.0
        self.r_depleting[s] = False
        self.r_deplete_fade[s] = 0.0

    def _agent_columns(self) -> dict:
        s = self._a.live()
        return {
            "ids": self._a.ids[s], "x": self.x[s], "y": self.y[s],
            "vx": self.vx[s], "vy": self.vy[s], "energy": self.energy[s],
            "age": self.age[s], "last_reproduction": self.last_reproduction[s],
            "predator": self.predator[s], "genes": self.genes[s],
        }

    def _resource_columns(self) -> dict:
        s = self._r.live()
        return {
            "ids": self._r.ids[s], "x": self.rx[s], "y": self.ry[s],
            "energy": self.r_energy[s],
            "available": resource_available(self.r_energy[s], self.r_spawn_fade[s],
                                            self.r_depleting[s]),
        }

    def _has_agent(self, aid) -> bool:
        return aid in self._a.index

    def _get(self, aid, name):
        return self._fields[name][self._a.index[aid]]

    def _set(self, aid, name, value):
        self._fields[name][self._a.index[aid]] = value

    def _genes(self, aid):
        return GeneSet(self.genes[self._a.index[aid]])

    def _write(self, aid, update, energy):
        s = self._a.index[aid]
        self.x[s], self.y[s] = update.x, update.y
        self.vx[s], self.vy[s] = update.vx, update.vy
        self.age[s] = update.age
        self.state[s] = update.state
        self.energy[s] = energy

    def _resource_available(self, rid) -> bool:
        s = self._r.index.get(rid)
        if s is None:
            return False
        return bool(resource_available(self.r_energy[s], self.r_spawn_fade[s], self.r_depleting[s]))

    def _bite(self, rid) -> float:
        s = self._r.index[rid]
        taken, self.r_energy[s], drained = take_bite(float(self.r_energy[s]))
        if drained and not self.r_depleting[s]:
            self.r_depleting[s] = True
            self.r_deplete_fade[s] = 0.0
        return taken

    def _advance_chunk(self, lo, hi, slots, dt):
        s = slots[lo:hi]
        return advance_resource(
            self.r_energy[s], self.r_target[s], self.r_max[s],
            self.r_growth[s], self.r_regen[s],
            self.r_spawn_fade[s], self.r_depleting[s], self.r_deplete_fade[s], dt)

    def _compute_resources(self, dt):
        slots = self._r.live()
        return slots, self.scheduler.map_partitions(self._advance_chunk, len(slots), slots, dt)

    def _apply_resources(self, result, dt):
        slots, chunks = result
        if not chunks:
            return
        self.r_energy[slots] = np.concatenate([c[0] for c in chunks])
        self.r_spawn_fade[slots] = np.concatenate([c[1] for c in chunks])
        self.r_deplete_fade[slots] = np.concatenate([c[2] for c in chunks])
        self.r_age[slots] += dt

    def _remove_dead(self):
        dead = np.flatnonzero(self._a.alive & (self.energy <= 0.0))
        self._a.release(dead)

    def _remove_faded(self):
        faded = np.flatnonzero(self._r.alive & self.r_depleting & (self.r_deplete_fade >= 1.0))
        self._r.release(faded)
