"""
JetPy: Higher-Order Derivative Towers and Composition Bounds

A numerical calculus toolkit for:
1. Continuous multilinear maps with isometric currying
2. Formal Taylor series and their validation on sets
3. Canonical iterated derivatives within sets
4. C^n differentiability classes with constructive witnesses
5. Smoothness-preserving combinators
6. Faà di Bruno composition bounds
"""

from setuptools import setup, find_packages

setup(
    name="jetpy",
    version="1.0.0",
    description="Higher-order derivative towers, differentiability classes and composition bounds",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="JetPy Research Team",
    python_requires=">=3.10",
    packages=find_packages(include=["jetpy", "jetpy.*"]),
    install_requires=[
        "numpy>=1.24.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
)
