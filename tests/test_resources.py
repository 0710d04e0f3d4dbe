"""
Tests for resource growth, feeding and fading.
"""

import numpy as np
import pytest

from config import FEED_AMOUNT, RESOURCE_LOW_ENERGY
from resources import Resource, advance_resource, resource_available, take_bite


def _resource(mature=False, seed=0):
    return Resource(1, 10.0, 10.0, np.random.default_rng(seed), mature=mature)


def _tick(res, dt):
    res.apply_update(res.compute_update(dt), dt)


class TestResource:
    def test_founder_starts_mature(self):
        res = _resource(mature=True)
        assert res.spawn_fade == 1.0
        assert res.energy == pytest.approx(res.target_energy)
        assert res.available

    def test_spawned_resource_fades_in(self):
        res = _resource()
        assert res.energy == 0.0
        assert not res.available
        _tick(res, 0.25)
        assert res.spawn_fade == pytest.approx(0.5)
        _tick(res, 0.25)
        assert res.spawn_fade == pytest.approx(1.0)

    def test_grows_once_faded_in(self):
        res = _resource()
        for _ in range(200):
            _tick(res, 0.1)
        assert res.energy > RESOURCE_LOW_ENERGY
        assert res.available

    def test_bite_depletes_and_fades_out(self):
        res = _resource(mature=True)
        taken = 0.0
        while not res.depleting:
            taken += res.consume()
        assert res.energy == 0.0
        assert not res.available
        assert not res.faded_out
        for _ in range(3):
            _tick(res, 0.1)
        assert not res.faded_out
        _tick(res, 0.1)
        assert res.faded_out

    def test_depleting_resource_does_not_regrow(self):
        res = _resource(mature=True)
        while not res.depleting:
            res.consume()
        _tick(res, 1.0)
        assert res.energy == 0.0


class TestLaw:
    def test_take_bite(self):
        assert take_bite(80.0) == (FEED_AMOUNT, 80.0 - FEED_AMOUNT, False)
        assert take_bite(20.0) == (20.0, 0.0, True)

    def test_vector_matches_scalar(self):
        rng = np.random.default_rng(4)
        n = 16
        energy = rng.uniform(0, 100, n)
        target = rng.uniform(20, 80, n)
        max_e = rng.uniform(50, 150, n)
        growth = rng.uniform(0.5, 2.0, n)
        regen = rng.uniform(0.1, 0.5, n)
        fade = rng.uniform(0, 1, n)
        depleting = rng.uniform(0, 1, n) < 0.3
        dfade = np.where(depleting, rng.uniform(0, 1, n), 0.0)
        e, f, d = advance_resource(energy, target, max_e, growth, regen, fade, depleting, dfade, 0.2)
        for i in range(n):
            ei, fi, di = advance_resource(energy[i], target[i], max_e[i], growth[i], regen[i],
                                          fade[i], depleting[i], dfade[i], 0.2)
            assert (e[i], f[i], d[i]) == pytest.approx((float(ei), float(fi), float(di)))

    def test_availability_rules(self):
        assert resource_available(10.0, 1.0, False)
        assert not resource_available(4.0, 1.0, False)
        assert not resource_available(10.0, 0.4, False)
        assert not resource_available(10.0, 1.0, True)
