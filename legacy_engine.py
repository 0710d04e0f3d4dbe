"""
Legacy EvoSim backend: one Python object per agent and per resource.

Agents and resources live in dicts keyed by their stable id. Ids are handed
out in increasing order and dicts keep insertion order, so iterating a dict
already walks the entities in ascending id.
"""

import numpy as np

from agent import Agent
from engine import AgentRecord, EngineBase, ResourceRecord
from genes import NUM_GENES
from resources import Resource


def _advance(resources: list, dt: float, i: int) -> tuple:
    return resources[i].compute_update(dt)


class LegacyEngine(EngineBase):

    name = "legacy"

    @property
    def agent_count(self) -> int:
        return len(self._agents)

    @property
    def resource_count(self) -> int:
        return len(self._resources)

    def agents(self) -> list:
        return [
            AgentRecord(a.id, a.generation, a.parent_id, a.x, a.y, a.energy, a.age,
                        a.state, a.predator, a.kills, a.genes)
            for a in self._agents.values()
        ]

    def resources(self) -> list:
        return [
            ResourceRecord(r.id, r.x, r.y, r.energy, r.max_energy, r.available, r.depleting)
            for r in self._resources.values()
        ]

    # ──────────────────────────────────────────────────────────────────────────

    def _clear(self):
        self._agents = {}
        self._resources = {}

    def _insert_agent(self, aid, x, y, genes, rng, generation, parent_id, energy):
        self._agents[aid] = Agent(aid, x, y, genes, rng, generation=generation,
                                  parent_id=parent_id, energy=energy)

    def _insert_resource(self, rid, x, y, rng, mature):
        self._resources[rid] = Resource(rid, x, y, rng, mature=mature)

    def _agent_columns(self) -> dict:
        agents = list(self._agents.values())
        return {
            "ids":    np.array([a.id for a in agents], dtype=np.int64),
            "x":      np.array([a.x for a in agents], dtype=np.float64),
            "y":      np.array([a.y for a in agents], dtype=np.float64),
            "vx":     np.array([a.vx for a in agents], dtype=np.float64),
            "vy":     np.array([a.vy for a in agents], dtype=np.float64),
            "energy": np.array([a.energy for a in agents], dtype=np.float64),
            "age":    np.array([a.age for a in agents], dtype=np.float64),
            "last_reproduction": np.array([a.last_reproduction for a in agents], dtype=np.float64),
            "predator": np.array([a.predator for a in agents], dtype=bool),
            "genes":  np.array([a.genes.values for a in agents],
                               dtype=np.float64).reshape(-1, NUM_GENES),
        }

    def _resource_columns(self) -> dict:
        res = list(self._resources.values())
        return {
            "ids":       np.array([r.id for r in res], dtype=np.int64),
            "x":         np.array([r.x for r in res], dtype=np.float64),
            "y":         np.array([r.y for r in res], dtype=np.float64),
            "energy":    np.array([r.energy for r in res], dtype=np.float64),
            "available": np.array([r.available for r in res], dtype=bool),
        }

    def _has_agent(self, aid) -> bool:
        return aid in self._agents

    def _get(self, aid, name):
        return getattr(self._agents[aid], name)

    def _set(self, aid, name, value):
        setattr(self._agents[aid], name, value)

    def _genes(self, aid):
        return self._agents[aid].genes

    def _write(self, aid, update, energy):
        agent = self._agents[aid]
        agent.apply(update)
        agent.energy = energy

    def _resource_available(self, rid) -> bool:
        res = self._resources.get(rid)
        return res is not None and res.available

    def _bite(self, rid) -> float:
        return self._resources[rid].consume()

    def _compute_resources(self, dt):
        res = list(self._resources.values())
        return res, self.scheduler.map(_advance, len(res), res, dt)

    def _apply_resources(self, result, dt):
        for res, update in zip(*result):
            res.apply_update(update, dt)

    def _remove_dead(self):
        for aid in [a.id for a in self._agents.values() if not a.alive]:
            del self._agents[aid]

    def _remove_faded(self):
        for rid in [r.id for r in self._resources.values() if r.faded_out]:
            del self._resources[rid]
