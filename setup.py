# setup.py
from setuptools import find_namespace_packages, setup

setup(
    name="pcli2",
    version="0.1.0",
    description="Batch command-line client for the Physna 3D asset management API",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["pcli2", "pcli2.*"]),
    install_requires=[
        "requests",
        "rich",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'pcli2=pcli2.main:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
