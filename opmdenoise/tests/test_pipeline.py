"""Tests for the dual-axis denoising pipeline."""

import unittest

import numpy as np


def _tone_power(data, freq, sfreq):
    window = np.hanning(data.shape[1])
    freqs = np.fft.rfftfreq(data.shape[1], 1 / sfreq)
    ind = np.argmin(np.abs(freqs - freq))
    return np.abs(np.fft.rfft(data * window, axis=1)[:, ind]) ** 2


class TestChannelLayout(unittest.TestCase):

    def test_split_and_interleave(self):
        from ..preprocessing import split_axes, interleave

        data = np.arange(24, dtype=float).reshape(6, 4)
        data_a, data_b = split_axes(data)

        assert(np.array_equal(data_a, data[[0, 2, 4]]))
        assert(np.array_equal(data_b, data[[1, 3, 5]]))
        assert(np.array_equal(interleave(data_a, data_b), data))

    def test_split_odd_rows(self):
        from ..preprocessing import split_axes, ConfigurationError

        with self.assertRaises(ConfigurationError) as cm:
            split_axes(np.zeros((5, 10)))
        assert(cm.exception.param == 'data')

    def test_select_axis(self):
        from ..preprocessing import select_axis, ConfigurationError

        data = np.arange(8, dtype=float)[:, None]

        assert(np.array_equal(select_axis(data, 'Z')[:, 0], [0, 2, 4, 6]))
        assert(np.array_equal(select_axis(data, 'y')[:, 0], [1, 3, 5, 7]))
        assert(np.array_equal(select_axis(data, 'Both'), data))

        with self.assertRaises(ConfigurationError) as cm:
            select_axis(data, 'X')
        assert(cm.exception.param == 'return_axis')

    def test_baseline_and_dc(self):
        from ..preprocessing import baseline_correct, remove_dc

        data = np.array([[1.0, 2.0, 3.0], [5.0, 5.0, 8.0]])
        assert(np.array_equal(baseline_correct(data), [[0, 1, 2], [0, 0, 3]]))
        assert(np.allclose(remove_dc(data).mean(axis=1), 0))


class TestDualAxisPipeline(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        from ..utils import simulate_dual_axis_recording

        cls.rec = simulate_dual_axis_recording(n_sensors=8, n_refs=3, seed=10)
        cls.options = {'ref_indices': [8, 9, 10]}

    def test_run_shapes(self):
        from ..preprocessing import DualAxisPipeline

        data = self.rec['data']
        out, diag = DualAxisPipeline(**self.options).run(data, self.rec['sfreq'])
        assert(out.shape == (8, data.shape[1]))
        assert(np.all(np.isfinite(out)))

        out, diag = DualAxisPipeline(return_axis='both', **self.options).run(data, self.rec['sfreq'])
        assert(out.shape == (16, data.shape[1]))

    def test_input_not_modified(self):
        from ..preprocessing import DualAxisPipeline

        data = self.rec['data'].copy()
        DualAxisPipeline(**self.options).run(data, self.rec['sfreq'])
        assert(np.array_equal(data, self.rec['data']))

    def test_steps_recorded(self):
        from ..preprocessing import DualAxisPipeline

        pipeline = DualAxisPipeline(line_freqs=[50], **self.options)
        out, diag = pipeline.run(self.rec['data'], self.rec['sfreq'])

        assert(diag.steps == ['split_axes', 'calibration', 'notch', 'interleave',
                              'rls', 'hfc', 'line_notch', 'select_axis'])
        for stage in ['calibration', 'notch', 'rls', 'hfc', 'line_notch']:
            assert(stage in diag.noise_reduction)
        assert(diag.hfc_rank == 1)
        assert(diag.to_dict()['hfc_rank'] == 1)

    def test_stages_can_be_switched_off(self):
        from ..preprocessing import DualAxisPipeline

        pipeline = DualAxisPipeline(calibration={'apply': False}, notch={'apply': False},
                                    rls={'apply': False}, hfc={'apply': False},
                                    return_axis='both', **self.options)
        out, diag = pipeline.run(self.rec['data'], self.rec['sfreq'])

        assert(diag.steps == ['split_axes', 'interleave', 'select_axis'])

        # Only the baseline correction is left
        raw = self.rec['data'][:16]
        assert(np.allclose(out, raw - raw[:, :1]))

    def test_calibration_tones_removed(self):
        from ..preprocessing import DualAxisPipeline

        sfreq = self.rec['sfreq']
        raw_z = self.rec['data'][0:16:2]
        out, diag = DualAxisPipeline(**self.options).run(self.rec['data'], sfreq)

        reduction_db = 10 * np.log10(_tone_power(raw_z, 320, sfreq).max()
                                     / _tone_power(out, 320, sfreq).max())
        assert(reduction_db >= 30)

    def test_orientations_per_row(self):
        from ..preprocessing import DualAxisPipeline

        n_rows = self.rec['data'].shape[0]
        orientations = np.tile([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0]], (n_rows // 2, 1))

        pipeline = DualAxisPipeline(**self.options)
        out_rows, _ = pipeline.run(self.rec['data'], self.rec['sfreq'], orientations=orientations)
        out_default, _ = pipeline.run(self.rec['data'], self.rec['sfreq'])

        assert(np.allclose(out_rows, out_default))

    def test_output_rows(self):
        from ..preprocessing import DualAxisPipeline

        pipeline = DualAxisPipeline(ref_indices=[0, 3])
        assert(np.array_equal(pipeline.output_rows(10), [2, 4, 8]))

        pipeline = DualAxisPipeline(ref_indices=[0, 3], return_axis='Y')
        assert(np.array_equal(pipeline.output_rows(10), [3, 5, 9]))

    def test_from_config(self):
        from ..preprocessing import DualAxisPipeline

        cfg = """
        ref_indices: [8, 9, 10]
        rls: {forgetting_factor: 0.99}
        return_axis: Y
        """
        pipeline = DualAxisPipeline.from_config(cfg)

        assert(pipeline.options['rls']['forgetting_factor'] == 0.99)
        assert(pipeline.options['rls']['min_samples'] == 100)
        assert(pipeline.canceller.forgetting_factor == 0.99)
        assert(pipeline.options['return_axis'] == 'Y')

        pipeline = DualAxisPipeline.from_config({'line_freqs': [50, 100]})
        assert(pipeline.options['line_freqs'] == [50, 100])

    def test_configuration_errors(self):
        from ..preprocessing import DualAxisPipeline, ConfigurationError

        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(unknown_option=1)
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(rls={'lambda': 0.9})
        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(return_axis='X')
        assert(cm.exception.param == 'return_axis')
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(axes=('Z', 'Z'))
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(ref_freqs={'Z': 320})

        data = self.rec['data']
        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(ref_indices=[8, 9, 20]).run(data, self.rec['sfreq'])
        assert(cm.exception.param == 'ref_indices')
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(ref_indices=[8, 8]).run(data, self.rec['sfreq'])
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(**self.options).run(data[:-1], self.rec['sfreq'])
        with self.assertRaises(ConfigurationError):
            DualAxisPipeline(**self.options).run(data, 0)

    def test_non_numeric_options(self):
        from ..preprocessing import DualAxisPipeline, ConfigurationError

        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(ref_freqs={'Z': '320', 'Y': 240})
        assert(cm.exception.param == 'ref_freq')
        assert('must be a number' in str(cm.exception))

        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline.from_config("rls: {forgetting_factor: '0.99'}")
        assert(cm.exception.param == 'forgetting_factor')

        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(notch={'bandwidth': [10]})
        assert(cm.exception.param == 'bandwidth')

        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(hfc={'eps': '1e-16'})
        assert(cm.exception.param == 'eps')

        with self.assertRaises(ConfigurationError) as cm:
            DualAxisPipeline(**self.options).run(self.rec['data'], '4800')
        assert(cm.exception.param == 'sfreq')
