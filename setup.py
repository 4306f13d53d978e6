"""Setup script for the StitchCraft Ghana API."""

from setuptools import setup, find_packages

setup(
    name="stitchcraft",
    version="1.0.0",
    description="Multi-tenant tailoring workshop API for Ghana: orders, invoices, Paystack payments",
    author="StitchCraft Ghana",
    python_requires=">=3.10",
    packages=find_packages(include=["stitchcraft", "stitchcraft.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.24.0",
            "pytest-mock>=3.12.0",
            "aiosqlite>=0.19.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Intended Audience :: Other Audience",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
