"""Tests for homogeneous field correction."""

import unittest

import numpy as np


class TestHomogeneousFieldProjector(unittest.TestCase):

    def test_projector_is_idempotent(self):
        from ..preprocessing import HomogeneousFieldProjector

        rng = np.random.default_rng(0)
        ori_a = rng.standard_normal((10, 3))
        ori_b = rng.standard_normal((10, 3))

        P, rank = HomogeneousFieldProjector().build(ori_a, ori_b)

        assert(rank == 6)
        assert(np.allclose(P @ P, P))
        assert(np.allclose(P, P.T))
        assert(np.allclose(P @ np.hstack([ori_a, ori_b]), 0))

    def test_removes_homogeneous_field(self):
        from ..preprocessing import HomogeneousFieldProjector

        rng = np.random.default_rng(1)
        ori_a = rng.standard_normal((12, 3))
        ori_b = rng.standard_normal((12, 3))
        field = rng.standard_normal((3, 500)) * 100
        brain = rng.standard_normal((12, 500))
        data = ori_a @ field + brain

        out, info = HomogeneousFieldProjector().apply(data, ori_a, ori_b)

        assert(out.shape == data.shape)
        assert(info['rank'] == 6)
        assert(info['noise_reduction'] > 90)
        assert(np.allclose(out, info['projector'] @ brain))

    def test_default_orientations(self):
        from ..preprocessing import HomogeneousFieldProjector, default_dual_axis_orientations

        ori_a, ori_b = default_dual_axis_orientations(8)
        assert(ori_a.shape == (8, 3))
        assert(np.all(ori_a[:, 2] == 1))
        assert(np.all(ori_b[:, 1] == 1))

        rng = np.random.default_rng(2)
        common = np.sin(np.linspace(0, 20, 1000))
        data = rng.standard_normal((8, 1000)) + 50 * common

        out, info = HomogeneousFieldProjector().apply(data, ori_a, ori_b)

        # Both axes point the same way on every channel, only the mean is removed
        assert(info['rank'] == 1)
        assert(np.allclose(out, data - data.mean(axis=0)))

    def test_zero_orientations(self):
        from ..preprocessing import HomogeneousFieldProjector, Diagnostics

        data = np.random.default_rng(3).standard_normal((4, 100))
        zeros = np.zeros((4, 3))
        diag = Diagnostics()

        out, info = HomogeneousFieldProjector().apply(data, zeros, zeros, diagnostics=diag)

        assert(info['rank'] == 0)
        assert(np.array_equal(out, data))
        assert(np.array_equal(info['projector'], np.eye(4)))
        assert(len(diag.warnings) == 1)

    def test_large_eps_gives_rank_zero(self):
        from ..preprocessing import HomogeneousFieldProjector

        rng = np.random.default_rng(4)
        P, rank = HomogeneousFieldProjector(eps=1.0).build(rng.standard_normal((5, 3)),
                                                            rng.standard_normal((5, 3)))
        assert(rank == 0)
        assert(np.array_equal(P, np.eye(5)))

    def test_configuration_errors(self):
        from ..preprocessing import HomogeneousFieldProjector, ConfigurationError

        with self.assertRaises(ConfigurationError):
            HomogeneousFieldProjector(eps=-1)
        with self.assertRaises(ConfigurationError) as cm:
            HomogeneousFieldProjector(eps='tiny')
        assert(cm.exception.param == 'eps')

        hfc = HomogeneousFieldProjector()
        with self.assertRaises(ConfigurationError) as cm:
            hfc.apply(np.zeros((4, 100)), np.zeros((3, 3)), np.zeros((4, 3)))
        assert(cm.exception.param == 'ori_a')

        with self.assertRaises(ConfigurationError) as cm:
            hfc.apply(np.zeros((4, 100)), np.zeros((4, 3)), np.zeros((4, 2)))
        assert(cm.exception.param == 'ori_b')
