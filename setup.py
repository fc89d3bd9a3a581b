"""Setup script for the tp358 package."""

from setuptools import find_packages, setup

setup(
    name="tp358-monitor",
    version="0.1.0",
    description="ThermoPro TP358/TP358S BLE advertisement scanner and live monitor",
    packages=find_packages(include=["tp358", "tp358.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pymysql",
        "pyyaml",
        "python-dotenv",
        "paho-mqtt>=2.0.0",
        "bleak",
        "aiohttp>=3.9",
        "rich",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "tp358-scanner=tp358.scanner:main",
            "tp358-console=tp358.console:main",
        ],
    },
)
