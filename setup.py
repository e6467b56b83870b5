from setuptools import setup, find_packages

setup(
    name="preventsleep-daemon",
    version="0.1.0",
    description="PreventSleep - keep the host awake on a schedule, managed by a background service",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "websockets>=13.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "preventsleep=preventsleep.main:main",
        ],
    },
)
