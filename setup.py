#!/usr/bin/env python
"""
asd - SSH with encrypted, cached passwords

A command line tool that opens password-authenticated SSH sessions, keeping
login passwords in gpg-encrypted files protected by a single passphrase.
"""

import os
from setuptools import setup, find_packages

# Read the README for long description
here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# Version
VERSION = '0.1.0'

setup(
    name='asd',
    version=VERSION,
    description='SSH client with gpg-encrypted password storage and caching',
    long_description=long_description,
    long_description_content_type='text/markdown',

    license='MIT',

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Topic :: System :: Networking',
        'Topic :: System :: Systems Administration',
    ],

    keywords='ssh password gpg credentials cli',

    packages=find_packages(exclude=['tests', 'tests.*']),

    python_requires='>=3.11',

    install_requires=[
        'paramiko>=3.0',
        'tomli-w>=1.0',
    ],

    extras_require={
        'dev': [
            'pytest>=7.0',
        ],
    },

    # Entry points for CLI commands
    entry_points={
        'console_scripts': [
            'asd=asd.cli.main:main',
        ],
    },
)
