from setuptools import setup, find_packages
import re

# Read version from cfmodel/__init__.py
with open('cfmodel/__init__.py') as f:
    version = re.search(r'^__version__ = ["\']([^"\']+)["\']', f.read(), re.MULTILINE).group(1)

setup(
    name='cf-model',
    version=version,
    packages=find_packages(include=['cfmodel', 'cfmodel.*']),
    install_requires=[
        'PyYAML>=6.0',
        'click>=8.0',
        'rich>=13.0',
        'pydantic>=2.0.0',
        'pandas>=2.0',
        'openpyxl>=3.1',
        'xlrd>=2.0',
    ],
    extras_require={
        'mcp': [
            'mcp[cli]>=1.0.0,<2',
        ],
        'test': [
            'pytest>=7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'cf-model=cfmodel.cli.__main__:main',
            'cf-model-mcp=cfmodel.mcp.server:run_server',
        ],
    },
    author='Personal',
    description='Provider compensation scenario modeling: conversion factors, wRVUs and market percentiles.',
    python_requires='>=3.10',
)
