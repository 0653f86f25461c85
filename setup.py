"""
Setup script for live-battle package with Cython compilation.

This builds the internal modules (_*/ packages and _*.py) as compiled
extensions, while keeping the public API (arena.py, callbacks.py,
types.py, errors.py) as readable Python source.
"""

from setuptools import setup, find_packages, Extension
import os

# Check if Cython is available
try:
    from Cython.Build import cythonize
    USE_CYTHON = True
except ImportError:
    USE_CYTHON = False
    print("Cython not found. Building without compilation (source only).")

# Internal modules to compile with Cython
CYTHON_MODULES = [
    "src/live_battle/_engine_config.py",
    "src/live_battle/_room/store.py",
    "src/live_battle/_room/state_machine.py",
    "src/live_battle/_room/repo_rooms.py",
    "src/live_battle/_room/repo_answers.py",
    "src/live_battle/_round/controller.py",
    "src/live_battle/_round/ledger.py",
    "src/live_battle/_round/scoring.py",
    "src/live_battle/_round/ranking.py",
    "src/live_battle/_round/deadline_tracker.py",
]


def get_extensions():
    """Build Extension objects for Cython compilation."""
    if not USE_CYTHON:
        return []

    extensions = []
    for module_path in CYTHON_MODULES:
        if os.path.exists(module_path):
            # src/live_battle/_round/ledger.py -> live_battle._round.ledger
            module_name = module_path.replace("src/", "").replace("/", ".").replace(".py", "")
            extensions.append(
                Extension(
                    name=module_name,
                    sources=[module_path],
                )
            )
    return extensions


def get_ext_modules():
    """Get extension modules, cythonized if Cython is available."""
    extensions = get_extensions()
    if not extensions:
        return []

    return cythonize(
        extensions,
        compiler_directives={
            "language_level": "3",
            "boundscheck": False,
            "wraparound": False,
        },
        nthreads=os.cpu_count() or 1,
    )


# Only add ext_modules if we have Cython
ext_modules = get_ext_modules() if USE_CYTHON else []

setup(
    name="live-battle",
    version="1.0.0",
    description="Live Battle Engine - real-time multiplayer quiz battles",
    author="Course Staff",
    license="Proprietary",
    python_requires=">=3.10",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    ext_modules=ext_modules,
    install_requires=[
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
        "dev": [
            "cython>=3.0",
            "build",
            "wheel",
            "pytest>=7.0",
        ],
    },
    # Schema and demo bank ship with the package; compiled .so/.pyd too
    package_data={
        "live_battle": ["*.so", "*.pyd", "demo_data/*.json"],
        "live_battle._room": ["schema.sql", "*.so", "*.pyd"],
        "live_battle._round": ["*.so", "*.pyd"],
    },
    entry_points={
        "console_scripts": [
            "live-battle=live_battle.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Cython",
    ],
)
