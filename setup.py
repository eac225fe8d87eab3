import pathlib

from setuptools import setup

# The directory containing this file
HERE = pathlib.Path(__file__).parent

# The text of the README file
README = (HERE / "README.md").read_text()

# Requirement categories
reqs = ['numpy', 'scipy', 'mne>=1.3', 'pandas', 'pyyaml>=5.1', 'dask',
        'distributed', 'packaging']
dev_reqs = ['setuptools>=41.0.1', 'pytest', 'pytest-cov', 'coverage', 'flake8']

name = 'opmdenoise'

setup(name=name,
      version='0.1.0',
      description='Adaptive denoising of dual-axis OPM-MEG recordings',
      long_description=README,
      long_description_content_type="text/markdown",
      license='MIT',

      # Choose your license
      # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
      classifiers=[
          'Development Status :: 3 - Alpha',

          # Indicate who your project is intended for
          'Intended Audience :: Science/Research',
          'Topic :: Scientific/Engineering :: Bio-Informatics',
          'Topic :: Scientific/Engineering :: Physics',

          'Programming Language :: Python :: 3',
          'Programming Language :: Python :: 3.8',
          'Programming Language :: Python :: 3.9',
          'Programming Language :: Python :: 3.10',
          'Programming Language :: Python :: 3.11',
      ],

      python_requires='>=3.8',
      install_requires=reqs,
      extras_require={
          'dev': dev_reqs,
          'full': dev_reqs,
      },

      zip_safe=False,
      entry_points={
          'console_scripts': [
              'opm_denoise = opmdenoise.preprocessing.batch:main',
          ]},

      packages=['opmdenoise', 'opmdenoise.tests', 'opmdenoise.preprocessing',
                'opmdenoise.utils'],
      )
