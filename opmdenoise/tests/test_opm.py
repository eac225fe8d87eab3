"""Tests for sensor geometry and MNE conversion."""

import unittest

import os
import shutil
import tempfile
import numpy as np


class TestSensorGeometry(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.test_dir = tempfile.mkdtemp()
        cls.tsv = os.path.join(cls.test_dir, 'channels.tsv')

        rows = ['name\ttype\tunit\tstatus\tx\ty\tz\tqx\tqy\tqz']
        for ii in range(4):
            status = 'bad' if ii == 2 else 'good'
            rows.append('OPM{0}Z\tMEGMAG\tfT\t{1}\t0.0{0}\t0.1\t0.0\t0\t0\t1'.format(ii, status))
            rows.append('OPM{0}Y\tMEGMAG\tfT\t{1}\t0.0{0}\t0.1\t0.0\t0\t1\t0'.format(ii, status))
        with open(cls.tsv, 'w') as f:
            f.write('\n'.join(rows) + '\n')

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.test_dir)

    def test_read_sensor_tsv(self):
        from ..utils import read_sensor_tsv

        sensors = read_sensor_tsv(self.tsv)

        assert(len(sensors['names']) == 8)
        assert(sensors['names'][:2] == ['OPM0Z', 'OPM0Y'])
        assert(sensors['positions'].shape == (8, 3))
        assert(np.array_equal(sensors['orientations'][0], [0, 0, 1]))
        assert(np.array_equal(sensors['orientations'][1], [0, 1, 0]))
        assert(sensors['bads'] == ['OPM2Z', 'OPM2Y'])

    def test_split_axis_orientations(self):
        from ..utils import split_axis_orientations

        rng = np.random.default_rng(0)
        orientations = rng.standard_normal((6, 3))
        ori_a, ori_b = split_axis_orientations(orientations)

        assert(ori_a.shape == (6, 3))
        assert(np.array_equal(ori_a[0], orientations[0]))
        assert(np.array_equal(ori_a[1], orientations[0]))
        assert(np.array_equal(ori_b[0], orientations[1]))
        assert(np.array_equal(ori_b[5], orientations[5]))

        with self.assertRaises(ValueError):
            split_axis_orientations(orientations[:5])


class TestMNEConversion(unittest.TestCase):

    def test_to_raw(self):
        import mne
        from ..utils import to_raw

        data = np.random.default_rng(1).standard_normal((4, 1000)) * 1000
        raw = to_raw(data, 1000.0)

        assert(isinstance(raw, mne.io.RawArray))
        assert(raw.ch_names == ['OPM001', 'OPM002', 'OPM003', 'OPM004'])
        assert(raw.info['sfreq'] == 1000.0)
        assert(np.allclose(raw.get_data(), data * 1e-15, rtol=1e-10, atol=0))

    def test_orientations_round_trip(self):
        from ..utils import to_raw, orientations_from_info

        rng = np.random.default_rng(2)
        orientations = rng.standard_normal((5, 3))
        orientations /= np.linalg.norm(orientations, axis=1, keepdims=True)
        positions = rng.uniform(-0.1, 0.1, (5, 3))

        raw = to_raw(np.zeros((5, 100)), 500.0, orientations=orientations, positions=positions,
                     ch_names=['A', 'B', 'C', 'D', 'E'])

        assert(np.allclose(orientations_from_info(raw.info), orientations))
        assert(np.allclose(raw.info['chs'][3]['loc'][:3], positions[3]))

    def test_loc_axes_orthonormal(self):
        from ..utils.opm import _orientation_to_loc

        loc = _orientation_to_loc(np.zeros(3), [1.0, 0.0, 0.0])
        axes = loc[3:12].reshape(3, 3)
        assert(np.allclose(axes @ axes.T, np.eye(3)))
        assert(np.allclose(loc[9:12], [1, 0, 0]))
