"""
Setup script for adaptive-quiz-engine.

The adaptive quiz engine assembles quizzes from a question bank with
freshness-weighted sampling and runs per-student adaptive attempts:

1. Quiz Assembler - Builds immutable quizzes of embedded question snapshots
2. Attempt Engine - Serves questions and adapts difficulty after each answer
3. Skill Aggregator - Turns completed attempts into per-topic skill points

The 'quizengine' command is the CLI entry point; the REST API is served
by 'python main.py' (FastAPI + uvicorn).
"""

from setuptools import find_namespace_packages, setup

setup(
    name="adaptive-quiz-engine",
    version="0.1.0",
    description="Freshness-weighted quiz assembly and adaptive quiz attempts",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["config", "main"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy[asyncio]>=2.0.0",
        "psycopg2-binary>=2.9.0",
        "asyncpg>=0.29.0",
        "aiosqlite>=0.19.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            # fastapi.testclient runs on httpx
            "httpx>=0.25.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "quizengine=src.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="quiz adaptive-learning education assessment",
)
