"""Tests for running batch denoising - checks that the chain runs and that
the outputs land where they should."""

import unittest
import tempfile
import shutil
import os

import numpy as np


cfg = """
meta:
  sfreq: 4800
preproc:
  - dual_axis:
      ref_indices: [8, 9, 10]
      line_freqs: [50]
      return_axis: Z
"""


class TestDenoisingChain(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        from ..utils import simulate_dual_axis_recording

        cls.test_dir = tempfile.mkdtemp()
        cls.rec = simulate_dual_axis_recording(n_sensors=8, n_refs=3, seed=7)
        cls.fpath = os.path.join(cls.test_dir, 'sim-01.npy')
        np.save(cls.fpath, cls.rec['data'])

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.test_dir)

    def test_simple_chain(self):
        from ..preprocessing import run_proc_chain, Diagnostics

        dataset = run_proc_chain(cfg, self.fpath)

        assert(dataset['data'].shape == (8, self.rec['data'].shape[1]))
        assert(isinstance(dataset['diagnostics'], Diagnostics))
        assert('line_notch' in dataset['diagnostics'].steps)
        assert(dataset['proc_info']['config']['meta']['sfreq'] == 4800)

    def test_chain_matches_pipeline(self):
        from ..preprocessing import run_proc_chain, DualAxisPipeline

        dataset = run_proc_chain(cfg, self.fpath)
        out, _ = DualAxisPipeline(ref_indices=[8, 9, 10], line_freqs=[50]).run(
            self.rec['data'], 4800)

        assert(np.allclose(dataset['data'], out))

    def test_chain_of_single_stages(self):
        from ..preprocessing import run_proc_chain

        stages = """
        meta:
          sfreq: 4800
        preproc:
          - baseline:
          - calibrate:  {ref_freq: 320, target_peak: 55600, axis: 0}
          - calibrate:  {ref_freq: 240, target_peak: 62400, axis: 1}
          - deep_notch: {freqs: 320, axis: 0}
          - deep_notch: {freqs: 240, axis: 1}
          - rls:        {ref_rows: [16, 17, 18, 19, 20, 21]}
          - hfc:
          - select_axis: {return_axis: Y}
        """
        dataset = run_proc_chain(stages, self.fpath)

        assert(dataset['data'].shape == (8, self.rec['data'].shape[1]))
        assert(dataset['diagnostics'].steps == ['baseline', 'calibration', 'calibration', 'notch',
                                                'notch', 'rls', 'hfc', 'select_axis'])

    def test_chain_from_dataset(self):
        from ..preprocessing import run_proc_chain

        dataset = {'data': self.rec['data'].copy(), 'sfreq': 4800.0}
        dataset = run_proc_chain(cfg, dataset, subject='sim-dict')
        assert(dataset['data'].shape[0] == 8)

    def test_user_function(self):
        from ..preprocessing import run_proc_chain

        def double(dataset, userargs):
            dataset['data'] = dataset['data'] * userargs.get('factor', 2)
            return dataset

        config = """
        meta:
          sfreq: 4800
        preproc:
          - double: {factor: 3}
        """
        dataset = run_proc_chain(config, self.fpath, extra_funcs=[double])
        assert(np.allclose(dataset['data'], self.rec['data'] * 3))

    def test_failure_returns_empty(self):
        from ..preprocessing import run_proc_chain

        config = """
        meta:
          sfreq: 4800
        preproc:
          - not_a_stage:
        """
        assert(run_proc_chain(config, self.fpath) == {})

        # npy input without a sampling rate
        assert(run_proc_chain({'preproc': [{'baseline': None}]}, self.fpath) == {})

    def test_write_outputs(self):
        from ..preprocessing import run_proc_chain, read_dataset

        outdir = os.path.join(self.test_dir, 'out')
        os.mkdir(outdir)
        flag = run_proc_chain(cfg, self.fpath, outdir=outdir, ret_dataset=False)
        assert(flag is True)

        rundir = os.path.join(outdir, 'sim-01')
        fif = os.path.join(rundir, 'sim-01_preproc-raw.fif')
        assert(os.path.exists(fif))
        assert(os.path.exists(os.path.join(rundir, 'sim-01_denoised.npy')))
        assert(os.path.exists(os.path.join(rundir, 'sim-01_diagnostics.yml')))
        assert(os.path.exists(os.path.join(rundir, 'logs', 'sim-01_preproc-raw.log')))

        # Existing outputs are not overwritten
        assert(run_proc_chain(cfg, self.fpath, outdir=outdir, ret_dataset=False) is False)

        data = np.load(os.path.join(rundir, 'sim-01_denoised.npy'))
        dataset = read_dataset(fif)
        assert(dataset['data'].shape == data.shape)
        assert(np.allclose(dataset['data'], data, rtol=1e-5, atol=1e-3 * np.abs(data).max()))
        assert(dataset['diagnostics']['hfc_rank'] == 1)
        assert('rls' in dataset['diagnostics']['steps'])


class TestDenoisingBatch(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        from ..utils import simulate_dual_axis_recording

        cls.test_dir = tempfile.mkdtemp()
        cls.infiles = []
        for ii in range(2):
            rec = simulate_dual_axis_recording(n_sensors=8, n_refs=3, duration=1.0, seed=ii)
            fpath = os.path.join(cls.test_dir, 'sim-{0:02d}.npy'.format(ii))
            np.save(fpath, rec['data'])
            cls.infiles.append(fpath)

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.test_dir)

    def test_simple_batch(self):
        from ..preprocessing import run_proc_batch

        outdir = os.path.join(self.test_dir, 'batch')
        os.mkdir(outdir)

        missing = os.path.join(self.test_dir, 'sim-99.npy')
        flags = run_proc_batch(cfg, self.infiles + [missing], outdir=outdir)

        assert(flags == [True, True, False])
        assert(os.path.exists(os.path.join(outdir, 'logs', 'opm_batch.log')))
        for ii in range(2):
            run = 'sim-{0:02d}'.format(ii)
            assert(os.path.exists(os.path.join(outdir, run, '{0}_preproc-raw.fif'.format(run))))

    def test_main(self):
        from ..preprocessing.batch import main

        outdir = os.path.join(self.test_dir, 'cli')
        os.mkdir(outdir)
        cfgfile = os.path.join(self.test_dir, 'config.yml')
        with open(cfgfile, 'w') as f:
            f.write(cfg)

        assert(main([cfgfile, self.infiles[0], '--outdir', outdir]) == 0)
        assert(os.path.exists(os.path.join(outdir, 'sim-00', 'sim-00_denoised.npy')))

    def test_main_reports_failures(self):
        from ..preprocessing.batch import main

        outdir = os.path.join(self.test_dir, 'cli-failures')
        os.mkdir(outdir)
        cfgfile = os.path.join(self.test_dir, 'config-failures.yml')
        with open(cfgfile, 'w') as f:
            f.write(cfg)
        filelist = os.path.join(self.test_dir, 'files.txt')
        with open(filelist, 'w') as f:
            f.write(self.infiles[1] + '\n')
            f.write(os.path.join(self.test_dir, 'sim-99.npy') + '\n')

        assert(main([cfgfile, filelist, '--outdir', outdir]) == 1)

        with open(os.path.join(outdir, 'logs', 'opm_batch.log')) as f:
            contents = f.read()
        assert('WARNING: 1 of 2 files failed' in contents)
