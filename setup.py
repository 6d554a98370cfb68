"""
Setup script for toxstatus - Tox Bootstrap Node Status Monitor
"""

from pathlib import Path

from setuptools import setup, find_packages


# Read requirements from requirements.txt
def read_requirements():
    requirements = Path(__file__).parent / "requirements.txt"
    try:
        with open(requirements, 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    except FileNotFoundError:
        return []


setup(
    name="toxstatus",
    version="0.1.0",
    description="toxstatus - Tox Bootstrap Node Status Monitor",
    long_description="Periodically probes Tox bootstrap nodes and serves their status as HTML and JSON.",
    packages=find_packages(include=['toxstatus', 'toxstatus.*']),
    package_data={
        'toxstatus': ['defaults.yaml'],
    },
    include_package_data=True,
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'toxstatus=toxstatus.cli:main',
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
)
