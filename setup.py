from setuptools import setup, find_packages

setup(
    name="medreminders",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "celery",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
