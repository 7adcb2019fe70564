#!/usr/bin/env python3
"""
Setup script for zkport
Transfer zkVM guest and host programs between proving platforms
"""

from setuptools import setup, find_packages

# Read README file
def read_readme():
    try:
        with open("README.md", "r", encoding="utf-8") as fh:
            return fh.read()
    except FileNotFoundError:
        return "Transfer zkVM guest and host programs between proving platforms"

# Read requirements
def read_requirements():
    try:
        with open("requirements.txt", "r", encoding="utf-8") as fh:
            requirements = []
            for line in fh:
                line = line.strip()
                if line and not line.startswith("#"):
                    requirements.append(line)
            return requirements
    except FileNotFoundError:
        return [
            "packaging>=21.0",
            "colorama>=0.4.6",
            "click>=8.0.0",
            "pydantic>=2.0.0",
            "pydantic-settings>=2.0.0",
            "pyyaml>=6.0",
        ]

setup(
    name="zkport",
    version="0.1.0",
    description="Transfer zkVM guest and host programs between proving platforms",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["zkport", "zkport.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "Topic :: Security :: Cryptography",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Environment :: Console",
    ],
    keywords="zkvm zero-knowledge sp1 risc0 openvm nexus jolt rust porting",
    python_requires=">=3.11",
    install_requires=read_requirements(),
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "zkport=zkport.cli.main:main",
        ],
    },
    include_package_data=True,
    package_data={
        "zkport.platforms": ["*.yaml"],
    },
    zip_safe=False,
)
