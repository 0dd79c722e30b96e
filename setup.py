"""
Traveler setup.py: Package configuration for the access & progress engine.
"""

from setuptools import find_packages, setup

setup(
    name="traveler",
    version="1.0.0",
    description="Traveler: access control and progress roll-up for forms, travelers and binders",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "redis>=5.0",
        "bcrypt>=4.1",
        "pyyaml>=6.0",
        "httpx>=0.27",
        "ldap3>=2.9",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
