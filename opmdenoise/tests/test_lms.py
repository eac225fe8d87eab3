"""Tests for LMS reference noise cancellation."""

import unittest

import numpy as np


class TestLMSNoiseCanceller(unittest.TestCase):

    def test_convergence(self):
        from ..preprocessing import LMSNoiseCanceller

        rng = np.random.default_rng(0)
        refs = rng.standard_normal((1, 5000))
        targets = 3 * refs + 0.1 * rng.standard_normal((1, 5000))

        residual, info = LMSNoiseCanceller(step_size=0.01, filter_order=2).apply(targets, refs)

        assert(residual.shape == targets.shape)
        assert(info['coefficients'].shape == (2, 1, 1))
        assert(abs(info['coefficients'][0, 0, 0] - 3) < 0.1)
        assert(abs(info['coefficients'][1, 0, 0]) < 0.1)
        assert(np.var(residual[:, 1000:]) < 0.05)
        assert(info['noise_reduction'] > 90)

    def test_delayed_reference(self):
        from ..preprocessing import LMSNoiseCanceller

        rng = np.random.default_rng(1)
        refs = rng.standard_normal((2, 6000))
        targets = np.zeros((1, 6000))
        targets[0, 2:] = 2 * refs[0, :-2] - refs[1, 2:]

        residual, info = LMSNoiseCanceller(step_size=0.01, filter_order=4).apply(targets, refs)

        # Taps are (lag, reference, target)
        assert(np.allclose(info['coefficients'][:, 0, 0], [0, 0, 2, 0], atol=0.05))
        assert(np.allclose(info['coefficients'][:, 1, 0], [-1, 0, 0, 0], atol=0.05))
        assert(np.allclose(residual[:, 3000:], 0, atol=0.05))

    def test_warmup_passthrough(self):
        from ..preprocessing import LMSNoiseCanceller

        rng = np.random.default_rng(2)
        refs = rng.standard_normal((1, 200))
        targets = rng.standard_normal((3, 200)) + 5

        residual, info = LMSNoiseCanceller(filter_order=10).apply(targets, refs)

        assert(info['n_warmup'] == 9)
        assert(np.array_equal(residual[:, :9], targets[:, :9]))
        # Weights start at zero so the first adaptive sample is unchanged too
        assert(np.array_equal(residual[:, 9], targets[:, 9]))

    def test_normalized_is_scale_invariant(self):
        from ..preprocessing import LMSNoiseCanceller, Diagnostics

        rng = np.random.default_rng(3)
        refs = 1e4 * rng.standard_normal((2, 3000))
        targets = 0.5 * refs[:1] + refs[1:]

        diag = Diagnostics()
        residual, info = LMSNoiseCanceller(step_size=0.5, normalized=True).apply(
            targets, refs, diagnostics=diag)

        assert(np.all(np.isfinite(residual)))
        assert(diag.warnings == [])
        assert(info['noise_reduction'] > 90)

    def test_divergence_warning(self):
        from ..preprocessing import LMSNoiseCanceller, Diagnostics

        rng = np.random.default_rng(4)
        refs = 1e4 * rng.standard_normal((1, 2000))
        targets = refs.copy()

        diag = Diagnostics()
        with np.errstate(over='ignore', invalid='ignore'):
            LMSNoiseCanceller(step_size=1.0).apply(targets, refs, diagnostics=diag)
        assert(len(diag.warnings) == 1)
        assert('diverged' in diag.warnings[0])

    def test_configuration_errors(self):
        from ..preprocessing import LMSNoiseCanceller, ConfigurationError

        with self.assertRaises(ConfigurationError):
            LMSNoiseCanceller(step_size=0)
        with self.assertRaises(ConfigurationError):
            LMSNoiseCanceller(filter_order=0)
        with self.assertRaises(ConfigurationError) as cm:
            LMSNoiseCanceller(step_size='0.01')
        assert(cm.exception.param == 'step_size')

        canceller = LMSNoiseCanceller(filter_order=20)
        with self.assertRaises(ConfigurationError) as cm:
            canceller.apply(np.zeros((1, 10)), np.zeros((1, 10)))
        assert(cm.exception.param == 'filter_order')

        with self.assertRaises(ConfigurationError) as cm:
            canceller.apply(np.zeros((1, 100)), np.zeros((1, 99)))
        assert(cm.exception.param == 'refs')
