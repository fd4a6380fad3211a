"""
Setup script for the sales star-schema ETL pipeline.
"""
from setuptools import setup, find_packages

setup(
    name="sales-star-etl",
    version="0.1.0",
    description="Flat-file sales records to a star-schema warehouse",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "sqlalchemy>=1.4",
        "pandas",
        "pydantic>=2",
        "pydantic-settings>=2.7",
        "structlog",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "sales-etl=sales_etl.cli:main",
        ],
    },
)
