from setuptools import setup, find_packages

setup(
    name="ecmetrics",
    version="0.1.0",
    description="Economic complexity metrics: RCA, proximity, density, ECI/PCI and complexity outlook",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "scipy",
        "pandas>=1.2",
        "tqdm"
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.10",
)
