from setuptools import setup, find_packages

setup(
    name="streamproof",
    version="0.1.0",
    description="streamproof — one-step SMT proofs of safety properties over stream specifications",
    packages=find_packages(include=["streamproof", "streamproof.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "streamproof=streamproof.cli:main",
        ],
    },
)
