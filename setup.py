# setup.py
from setuptools import setup, find_packages

setup(
    name="pymaestro",
    version="0.1.0",
    packages=find_packages(include=["pymaestro", "pymaestro.*"]),
    package_data={"pymaestro": ["config/*.yaml"]},
    install_requires=[
        "numpy",
        "pyyaml",
        "pyserial",
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov'
        ],
    },
    entry_points={
        'console_scripts': [
            'maestro-cmd=pymaestro.maestro_cli:main',
        ],
    },
)
