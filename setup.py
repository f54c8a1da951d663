# setup.py
from setuptools import setup, find_packages

setup(
    name="darkstar_decoder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "construct>=2.10",
        "numpy>=1.20",
        "Pillow>=9.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.8",
    description="Decoders for Darkstar engine shapes, palettes, bitmaps, terrain and interiors",
    keywords="darkstar, tribes, shape, dts, decoder",
)
