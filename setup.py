from setuptools import setup, find_packages

setup(
    name="tokenwatch",
    version="1.0.0",
    description="Token ownership indexer with a live transfer feed",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.25.0",   # PostgreSQL driver
        "aiosqlite>=0.19.0", # SQLite driver
        "pydantic>=2.0.0",
        "python-dotenv>=0.19.0",
        "aiohttp>=3.8.0",    # For ledger JSON-RPC client
        "websockets>=14.1",  # For feed client and uvicorn websocket support
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.24.0",  # For fastapi.testclient
            "black>=21.0.0",
            "isort>=5.0.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "tokenwatch=tokenwatch.services.indexer.main:run",
        ]
    }
)
