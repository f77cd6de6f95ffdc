from setuptools import setup, find_packages

setup(
    name="PGT",
    version="0.1.0",
    packages=find_packages(include=["PGT", "PGT.*"]),
    description="Pattern detection and rewriting for hierarchical process graphs.",
    author="gugugu12138",
    author_email="1531483447@qq.com",
    url="https://github.com/gugugu12138/AdaptoFlux",
    install_requires=[
        "numpy",
        "networkx>=3.4",
        "matplotlib",
        "pygraphviz",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.10',
)
