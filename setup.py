from setuptools import setup, find_packages

setup(
    name="gadget_modeling",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "z3-solver>=4.8.12",
        "capstone>=5.0",
        "pyelftools>=0.29",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        'console_scripts': [
            'gadget-modeling=gadget_modeling.main:main',
        ],
    },
    description="Symbolic x86 instruction semantics for checking exec-family gadgets",
    keywords="symbolic execution, gadget, x86, one-gadget",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
