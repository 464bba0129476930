# -*- coding: utf-8 -*-

import os.path

import setuptools


def readme():
    """Load README contents."""
    path = os.path.join(os.path.dirname(__file__), "README.rst")
    with open(path) as readme:
        return readme.read()


def install_requires():
    """Determine installation requirements."""
    return [
        "docopt>=0.6.2",
    ]


setuptools.setup(
    name="sourcon",
    version="0.1.0",
    description=("Asynchronous Python client for the Source RCON "
                 "(remote console) protocol."),
    long_description=readme(),
    author="Oliver Ainsworth",
    author_email="ottajay@googlemail.com",
    packages=setuptools.find_packages(exclude=["tests"]),
    python_requires=">=3.8",
    install_requires=install_requires(),
    extras_require={
        "development": [
            "pylint",
        ],
        "test": [
            "mock>=4.0",
            "pytest>=3.6.0",
            "pytest-cov",
            "pytest-timeout",
        ],
        "docs": [
            "sphinx",
            "sphinx_rtd_theme",
        ],
    },
    entry_points={
        "console_scripts": [
            "sourcon = sourcon.shell:_main",
        ],
    },
    license="MIT License",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
        "Topic :: Games/Entertainment",
    ],
)
