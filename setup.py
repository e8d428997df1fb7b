from setuptools import setup, find_packages

setup(
    name="xpired",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "alembic", "alembic.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "alembic",
        "psycopg2-binary",
        "redis",
        "celery",
        "kombu",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "requests",
        "tzdata",
    ],
    entry_points={
        "console_scripts": [
            "xpired-worker=xpired.reminders.worker:main",
        ],
    },
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
