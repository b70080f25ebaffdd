import ast
import os.path
import re

from setuptools import setup

setup_dir = os.path.split(os.path.abspath(__file__))[0]
with open(os.path.join(setup_dir, 'README.rst')) as f:
    DOCUMENTATION = f.read()

with open(os.path.join(setup_dir, 'kompakt', '__init__.py')) as f:
    version_match = re.search(r'^VERSION = (.*)$', f.read(), re.MULTILINE)
VERSION = '.'.join([str(x) for x in ast.literal_eval(version_match.group(1))])

dependencies = ['mako', 'numpy', 'grunnur>=0.4']

setup(
    name='kompakt',
    packages=['kompakt', 'kompakt.core', 'kompakt.algorithms'],
    provides=['kompakt'],
    install_requires=dependencies,
    extras_require={
        'opencl': ['pyopencl'],
        'cuda': ['pycuda'],
        'test': ['pytest', 'pyopencl[pocl]'],
    },
    package_data={'kompakt.algorithms': ['*.mako']},
    python_requires='>=3.10',
    version=VERSION,
    description='Work-efficient scan and stream compaction for PyCuda and PyOpenCL',
    long_description=DOCUMENTATION,
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Mathematics'
    ]
)
