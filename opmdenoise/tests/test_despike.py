"""Tests for running median despiking."""

import unittest

import numpy as np


class TestRunningMedian(unittest.TestCase):

    def test_truncated_edges(self):
        from ..preprocessing import running_median

        x = np.array([5.0, 1.0, 2.0, 3.0, 4.0, 9.0])
        out = running_median(x, 3)

        assert(np.allclose(out, [3.0, 2.0, 2.0, 3.0, 4.0, 6.5]))

    def test_window_longer_than_signal(self):
        from ..preprocessing import running_median

        x = np.array([1.0, 7.0, 3.0, 9.0])
        assert(np.allclose(running_median(x, 5), [3.0, 5.0, 5.0, 7.0]))


class TestMedianDespiker(unittest.TestCase):

    def test_spikes_removed(self):
        from ..preprocessing import MedianDespiker

        rng = np.random.default_rng(0)
        data = rng.standard_normal((3, 2000))
        spikes = [(0, 100), (1, 1500), (2, 1999)]
        spiky = data.copy()
        for ch, tt in spikes:
            spiky[ch, tt] += 50

        out, n_spikes = MedianDespiker(window_size=5, threshold=6.0).apply(spiky)

        assert(out.shape == data.shape)
        for ch, tt in spikes:
            assert(abs(out[ch, tt]) < 5)
        assert(n_spikes >= 3)
        # Only a small fraction of the samples is touched
        assert(n_spikes < 0.01 * data.size)

    def test_input_not_modified(self):
        from ..preprocessing import median_despike

        data = np.random.default_rng(1).standard_normal((2, 500))
        data[0, 250] = 100
        orig = data.copy()
        median_despike(data)
        assert(np.array_equal(data, orig))

    def test_flat_channels(self):
        from ..preprocessing import MedianDespiker

        data = np.full((2, 100), 3.0)
        out, n_spikes = MedianDespiker().apply(data)
        assert(n_spikes == 0)
        assert(np.array_equal(out, data))

        # Zero MAD, any deviation from the running median is a spike
        data[1, 40] = 4.0
        out, n_spikes = MedianDespiker().apply(data)
        assert(n_spikes == 1)
        assert(np.all(out == 3.0))

    def test_short_and_empty_input(self):
        from ..preprocessing import MedianDespiker

        out, n_spikes = MedianDespiker(window_size=7).apply(np.array([[1.0, 2.0, 50.0]]))
        assert(out.shape == (1, 3))
        assert(np.all(np.isfinite(out)))

        out, n_spikes = MedianDespiker().apply(np.zeros((2, 0)))
        assert(out.shape == (2, 0))
        assert(n_spikes == 0)

    def test_configuration_errors(self):
        from ..preprocessing import MedianDespiker, ConfigurationError

        with self.assertRaises(ConfigurationError) as cm:
            MedianDespiker(window_size=4)
        assert(cm.exception.param == 'window_size')
        with self.assertRaises(ConfigurationError):
            MedianDespiker(window_size=1)
        with self.assertRaises(ConfigurationError):
            MedianDespiker(threshold=0)
        with self.assertRaises(ConfigurationError) as cm:
            MedianDespiker(threshold='3')
        assert(cm.exception.param == 'threshold')
