"""
Agent entity for EvoSim.

Each agent has:
  - a stable integer id, a generation counter and its first parent's id
  - (x, y) position on the torus and a velocity (vx, vy)
  - energy, age and a behavioural state
  - an owned GeneSet; predator/prey type is fixed at birth from is_predator

Agents never hold references to other agents or resources; anything they
interact with is named by id and looked up by the engine.
"""

import math
from enum import IntEnum

from config import AGENT_START_ENERGY, BASE_MOVE_SPEED


class AgentState(IntEnum):
    SEEKING     = 0
    HUNTING     = 1
    FEEDING     = 2
    FIGHTING    = 3
    FLEEING     = 4
    REPRODUCING = 5


class DeathReason(IntEnum):
    STARVATION         = 1
    OLD_AGE            = 2
    KILLED_BY_PREDATOR = 3
    COMBAT             = 4
    POPULATION_CAP     = 5


def spawn_velocity(genes, rng) -> tuple:
    """Random initial heading at the agent's cruising speed."""
    angle = rng.uniform(0.0, 2.0 * math.pi)
    speed = genes.speed * BASE_MOVE_SPEED
    return math.cos(angle) * speed, math.sin(angle) * speed


class Agent:
    """
    A single creature in the legacy (one object per agent) engine.
    """
    __slots__ = (
        "id", "generation", "parent_id", "x", "y", "vx", "vy",
        "energy", "age", "state", "genes", "predator",
        "kills", "last_reproduction",
    )

    def __init__(self, aid: int, x: float, y: float, genes, rng,
                 generation: int = 0, parent_id=None,
                 energy: float = AGENT_START_ENERGY):
        self.id         = aid
        self.generation = generation
        self.parent_id  = parent_id
        self.x, self.y  = x, y
        self.vx, self.vy = spawn_velocity(genes, rng)
        self.energy     = energy
        self.age        = 0.0
        self.state      = AgentState.SEEKING
        self.genes      = genes
        self.predator   = genes.predator_type
        self.kills      = 0
        self.last_reproduction = -math.inf

    def apply(self, update):
        """Copy a pending update's kinematics and vitals onto this agent."""
        self.x, self.y   = update.x, update.y
        self.vx, self.vy = update.vx, update.vy
        self.energy      = update.energy
        self.age         = update.age
        self.state       = update.state

    @property
    def alive(self) -> bool:
        return self.energy > 0.0

    def __repr__(self):
        kind = "predator" if self.predator else "prey"
        return (f"Agent(id={self.id}, {kind}, gen={self.generation}, "
                f"energy={self.energy:.1f}, state={self.state.name})")
