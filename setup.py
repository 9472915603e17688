#!/usr/bin/env python
import ast
import os

from setuptools import setup


here = os.path.dirname(__file__)
metadata = {}
with open(os.path.join(here, 'ghsync.py')) as f:
    for line in f:
        if line.startswith(('__author__ =',
                            '__licence__ =',
                            '__url__ =',
                            '__version__ =')):
            k, v = line.split('=', 1)
            metadata[k.strip()] = ast.literal_eval(v.strip())
with open(os.path.join(here, 'README.rst')) as f:
    long_description = f.read()
with open(os.path.join(here, 'CHANGES.rst')) as f:
    long_description += '\n\n' + f.read()

setup(
    name='ghsync',
    version=metadata['__version__'],
    author='Teidesat',
    author_email='teidesat@ull.edu.es',
    url=metadata['__url__'],
    description='Mirror all repositories of a GitHub user/organization'
                ' into a local backup directory',
    long_description=long_description,
    long_description_content_type='text/x-rst',
    keywords='github git clone pull backup mirror automation',
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
    ],
    license='MIT',
    python_requires='>=3.9',
    py_modules=['ghsync'],
    install_requires=[
        'requests',
        'requests_cache',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'ghsync = ghsync:main',
        ],
    },
    zip_safe=False,
)
