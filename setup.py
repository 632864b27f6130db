"""
Setup configuration for MidatoPay
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="midatopay",
    version="0.1.0",
    author="MidatoPay Team",
    description="Fiat-denominated merchant payments settled in stablecoins on Starknet",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/midatopay/midatopay",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Office/Business :: Financial",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic>=2.5.3",
        "pydantic-settings>=2.1.0",
        "httpx>=0.26.0",
        "structlog>=24.1.0",
        "python-dotenv>=1.0.0",
        "rich>=13.7.0",
        "supabase>=2.3.4",
        "slowapi>=0.1.9",
        "starknet-py>=0.20.0",
        "cryptography>=42.0.0",
        "passlib>=1.7.4",
        "qrcode>=7.4.2",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "factory-boy>=3.3.0",
        ],
    },
    # No console_scripts entry point; run the pieces directly:
    #   python -m midatopay.api.server
    #   python -m midatopay.cli.midatopay_cli wallet create
)
