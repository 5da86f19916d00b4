from setuptools import setup, find_packages

setup(
    name="live_patcher",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml",
        # Comment-preserving parse and render of patched units
        "libcst>=1.0",
        # Patch directory watcher
        "watchdog>=3.0",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "livepatch=live_patcher.cli:main",
        ],
    },
    description="Apply and merge source patches to classes and functions of a running Python process.",
)
