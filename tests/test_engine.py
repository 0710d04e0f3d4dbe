"""
Tests for both engine backends behind the Simulation selector.
"""

import numpy as np
import pytest

from agent import AgentState
from behavior import metabolic_cost
from config import FEED_AMOUNT, PREDATION_GAIN, SimulationConfig
from data_engine import DataOrientedEngine
from engine import Stats
from genes import GeneSet
from legacy_engine import LegacyEngine
from simulation import Simulation

BACKENDS = [True, False]
IDS = ["data-oriented", "legacy"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _config(data_oriented=True, **overrides) -> SimulationConfig:
    defaults = dict(
        width=300.0, height=300.0,
        initial_agents=40, initial_resources=60,
        max_agents=200, max_resources=300,
        resource_spawn_rate=2.0,
        use_data_oriented_engine=data_oriented,
        seed=1234,
    )
    defaults.update(overrides)
    return SimulationConfig(**defaults)


def _trajectory(config, steps=60, dt=0.1):
    with Simulation(config) as sim:
        return [sim.step(dt).as_dict() for _ in range(steps)]


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

class TestSelector:
    def test_picks_backend_from_flag(self):
        with Simulation(_config(True)) as sim:
            assert isinstance(sim._engine, DataOrientedEngine)
            assert sim.engine_name == "data-oriented"
        with Simulation(_config(False)) as sim:
            assert isinstance(sim._engine, LegacyEngine)
            assert sim.engine_name == "legacy"

    def test_step_callback(self):
        seen = []
        with Simulation(_config(), on_step_callback=seen.append) as sim:
            sim.step(0.1)
            sim.step(0.1)
        assert [s.tick for s in seen] == [1, 2]


# ---------------------------------------------------------------------------
# Public contract, both backends
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("data_oriented", BACKENDS, ids=IDS)
class TestContract:
    def test_initial_population(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            stats = sim.get_stats()
            assert stats.agent_count == 40
            assert stats.resource_count == 60
            assert stats.tick == 0
            assert stats.total_energy == pytest.approx(40 * 80.0)

    def test_step_returns_stats(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            stats = sim.step(0.25)
            assert isinstance(stats, Stats)
            assert stats.tick == 1
            assert stats.time == pytest.approx(0.25)

    @pytest.mark.parametrize("dt", [0.0, -0.1])
    def test_non_positive_dt_rejected(self, data_oriented, dt):
        with Simulation(_config(data_oriented)) as sim:
            with pytest.raises(ValueError):
                sim.step(dt)

    def test_get_stats_does_not_mutate(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            sim.step(0.1)
            a = sim.get_stats()
            b = sim.get_stats()
            assert a == b
            assert sim.tick == 1

    def test_add_agent_respects_cap(self, data_oriented):
        cfg = _config(data_oriented, initial_agents=5, max_agents=5)
        with Simulation(cfg) as sim:
            assert sim.add_agent(10.0, 10.0) is False
            assert sim.get_stats().agent_count == 5

    def test_add_resource_respects_cap(self, data_oriented):
        cfg = _config(data_oriented, initial_resources=3, max_resources=4)
        with Simulation(cfg) as sim:
            assert sim.add_resource(10.0, 10.0) is True
            assert sim.add_resource(20.0, 20.0) is False
            assert sim.get_stats().resource_count == 4

    def test_add_agent_wraps_coordinates(self, data_oriented):
        cfg = _config(data_oriented, initial_agents=0)
        with Simulation(cfg) as sim:
            assert sim.add_agent(305.0, -3.0) is True
            (rec,) = sim.agents()
            assert rec.x == pytest.approx(5.0)
            assert rec.y == pytest.approx(297.0)
            assert rec.generation == 0
            assert rec.parent_id is None
            assert rec.energy == pytest.approx(80.0)
            assert rec.state == AgentState.SEEKING

    def test_caps_hold_every_tick(self, data_oriented):
        cfg = _config(data_oriented, initial_agents=30, max_agents=30,
                      initial_resources=20, max_resources=25, resource_spawn_rate=50.0)
        with Simulation(cfg) as sim:
            for _ in range(150):
                stats = sim.step(0.2)
                assert stats.agent_count <= 30
                assert stats.resource_count <= 25

    def test_genes_stay_in_range(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            for _ in range(100):
                sim.step(0.2)
            assert all(rec.genes.in_range() for rec in sim.agents())

    def test_records_in_id_order(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            for _ in range(50):
                sim.step(0.2)
            ids = [rec.id for rec in sim.agents()]
            assert ids == sorted(ids)
            rids = [rec.id for rec in sim.resources()]
            assert rids == sorted(rids)

    def test_energy_never_negative(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            for _ in range(100):
                sim.step(0.2)
                assert all(rec.energy > 0.0 for rec in sim.agents())

    def test_death_bookkeeping(self, data_oriented):
        with Simulation(_config(data_oriented, seed=5)) as sim:
            for _ in range(200):
                stats = sim.step(0.5)
            assert stats.deaths == sum(stats.deaths_by_reason.values())
            assert stats.agent_count == 40 + stats.births - stats.deaths \
                + stats.deaths_by_reason["population_cap"]

    def test_resources_spawn_over_time(self, data_oriented):
        cfg = _config(data_oriented, initial_agents=0, initial_resources=0, resource_spawn_rate=1.0)
        with Simulation(cfg) as sim:
            for _ in range(10):
                stats = sim.step(0.5)
            assert stats.resource_count == 5

    def test_reset_replays_the_same_world(self, data_oriented):
        with Simulation(_config(data_oriented)) as sim:
            first = [sim.step(0.1).as_dict() for _ in range(20)]
            sim.reset()
            assert sim.get_stats().tick == 0
            assert sim.get_stats().agent_count == 40
            again = [sim.step(0.1).as_dict() for _ in range(20)]
        assert first == again

    def test_same_seed_same_run(self, data_oriented):
        assert _trajectory(_config(data_oriented)) == _trajectory(_config(data_oriented))

    def test_worker_count_does_not_change_results(self, data_oriented):
        one = _trajectory(_config(data_oriented, workers=1))
        four = _trajectory(_config(data_oriented, workers=4))
        assert one == four

    def test_different_seeds_diverge(self, data_oriented):
        a = _trajectory(_config(data_oriented, seed=1), steps=30)
        b = _trajectory(_config(data_oriented, seed=2), steps=30)
        assert a != b


# ---------------------------------------------------------------------------
# Backend equivalence
# ---------------------------------------------------------------------------

class TestBackendEquivalence:
    def test_population_trajectories_agree(self):
        soa, aos = [], []
        for seed in (11, 12, 13):
            soa.append([s["agent_count"] for s in _trajectory(_config(True, seed=seed), steps=80, dt=0.5)])
            aos.append([s["agent_count"] for s in _trajectory(_config(False, seed=seed), steps=80, dt=0.5)])
        soa_mean, aos_mean = np.mean(soa), np.mean(aos)
        assert abs(soa_mean - aos_mean) <= 0.1 * max(soa_mean, aos_mean)
        assert abs(np.std(soa) - np.std(aos)) <= 0.25 * max(np.std(soa), np.std(aos)) + 1.0

    def test_founders_identical_across_backends(self):
        with Simulation(_config(True)) as a, Simulation(_config(False)) as b:
            ra, rb = a.agents(), b.agents()
            assert [r.id for r in ra] == [r.id for r in rb]
            assert all(x.genes == y.genes for x, y in zip(ra, rb))
            assert all((x.x, x.y) == (y.x, y.y) for x, y in zip(ra, rb))


# ---------------------------------------------------------------------------
# Slot reuse in the data-oriented backend
# ---------------------------------------------------------------------------

class TestSlotReuse:
    def test_freed_slots_are_reused(self):
        cfg = _config(True, initial_agents=10, max_agents=10, initial_resources=0,
                      resource_spawn_rate=0.0)
        with Simulation(cfg) as sim:
            engine = sim._engine
            for _ in range(400):
                sim.step(1.0)
                if sim.get_stats().agent_count < 10:
                    break
            free_before = 10 - sim.get_stats().agent_count
            assert free_before > 0
            added = sum(sim.add_agent(50.0, 50.0) for _ in range(free_before))
            assert added == free_before
            assert sim.add_agent(50.0, 50.0) is False
            assert engine.agent_count == 10
            assert len(engine._a.index) == int(np.count_nonzero(engine._a.alive))


# ---------------------------------------------------------------------------
# Merge-phase conflict rules, both backends
# ---------------------------------------------------------------------------

PREY = GeneSet.from_dict({"is_predator": 0.0, "aggression": 0.2})
WEAK_PREY = GeneSet.from_dict({"is_predator": 0.0, "aggression": 0.2, "attack_power": 0.1})
HUNTER = GeneSet.from_dict({"is_predator": 1.0, "attack_power": 3.0})


def _empty_world(data_oriented, **overrides):
    settings = dict(initial_agents=0, initial_resources=0, resource_spawn_rate=0.0)
    settings.update(overrides)
    return Simulation(_config(data_oriented, **settings))


def _place(sim, x, y, genes, energy=None, age=None) -> int:
    """Add one agent with fixed genes; returns its id."""
    engine = sim._engine
    aid = engine._next_agent_id
    assert sim.add_agent(x, y, genes)
    if energy is not None:
        engine._set(aid, "energy", energy)
    if age is not None:
        engine._set(aid, "age", age)
    return aid


def _by_id(sim) -> dict:
    return {rec.id: rec for rec in sim.agents()}


@pytest.mark.parametrize("data_oriented", BACKENDS, ids=IDS)
class TestMerge:
    dt = 0.01

    def test_second_bite_sees_the_first(self, data_oriented):
        with _empty_world(data_oriented, initial_resources=1) as sim:
            (res,) = sim.resources()
            a = _place(sim, res.x - 2.0, res.y, PREY)
            b = _place(sim, res.x + 2.0, res.y, PREY)
            sim.step(self.dt)
            drain = metabolic_cost(PREY.values, self.dt)
            gain_a = _by_id(sim)[a].energy - (80.0 - drain)
            gain_b = _by_id(sim)[b].energy - (80.0 - drain)
            (after,) = sim.resources()
        assert gain_a == pytest.approx(min(FEED_AMOUNT, res.energy), abs=0.05)
        assert gain_a + gain_b <= res.energy + 0.05
        assert after.energy == pytest.approx(res.energy - gain_a - gain_b, abs=0.05)

    def test_predation_energy_through_merge(self, data_oriented):
        with _empty_world(data_oriented) as sim:
            hunter = _place(sim, 150.0, 150.0, HUNTER)
            prey = _place(sim, 153.0, 150.0, WEAK_PREY)
            stats = sim.step(self.dt)
            winner = _by_id(sim)[hunter]
        assert prey not in _by_id(sim)
        expected = 80.0 - metabolic_cost(HUNTER.values, self.dt) + PREDATION_GAIN * 80.0
        assert winner.energy == pytest.approx(expected)
        assert winner.kills == 1
        assert stats.deaths_by_reason["killed_by_predator"] == 1
        assert stats.total_kills == 1

    def test_fight_over_a_dead_target_falls_back(self, data_oriented):
        with _empty_world(data_oriented) as sim:
            first = _place(sim, 147.0, 150.0, HUNTER)
            prey = _place(sim, 150.0, 150.0, WEAK_PREY)
            late = _place(sim, 153.0, 150.0, HUNTER)
            stats = sim.step(self.dt)
            agents = _by_id(sim)
        assert prey not in agents
        assert agents[first].state == AgentState.FIGHTING
        assert agents[first].kills == 1
        assert agents[late].state == AgentState.SEEKING
        assert agents[late].kills == 0
        assert agents[late].energy == pytest.approx(80.0 - metabolic_cost(HUNTER.values, self.dt))
        assert stats.total_kills == 1

    def test_both_parents_end_reproducing(self, data_oriented):
        with _empty_world(data_oriented) as sim:
            a = _place(sim, 150.0, 150.0, PREY, energy=150.0, age=5.0)
            b = _place(sim, 160.0, 150.0, PREY, energy=150.0, age=5.0)
            stats = sim.step(self.dt)
            agents = _by_id(sim)
        assert stats.births == 1
        assert agents[a].state == AgentState.REPRODUCING
        assert agents[b].state == AgentState.REPRODUCING
        (child,) = [r for r in agents.values() if r.id not in (a, b)]
        assert child.parent_id == a
        assert child.generation == 1
        drain = metabolic_cost(PREY.values, self.dt)
        assert child.energy == pytest.approx((150.0 - drain) * 0.3 + 150.0 * 0.3)

    def test_birth_at_population_cap_is_culled(self, data_oriented):
        with _empty_world(data_oriented, max_agents=2) as sim:
            a = _place(sim, 150.0, 150.0, PREY, energy=150.0, age=5.0)
            b = _place(sim, 160.0, 150.0, PREY, energy=150.0, age=5.0)
            stats = sim.step(self.dt)
            agents = _by_id(sim)
        drain = metabolic_cost(PREY.values, self.dt)
        assert stats.agent_count == 2
        assert stats.births == 0
        assert stats.deaths_by_reason["population_cap"] == 1
        assert agents[a].energy == pytest.approx((150.0 - drain) * 0.7)
        assert agents[b].energy == pytest.approx(150.0 * 0.7 - drain)
        assert agents[a].state == AgentState.REPRODUCING
        assert agents[b].state == AgentState.REPRODUCING
