import asyncio
import re
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from balance_tracker.infrastructure.config import load_config
from balance_tracker.infrastructure.db.base import Base
# Import all models to ensure they're registered with the Base
from balance_tracker.infrastructure.db.balance.model import BalanceSnapshot  # noqa: F401
from balance_tracker.infrastructure.db.network.model import Network  # noqa: F401
from balance_tracker.infrastructure.db.wallet.model import Wallet  # noqa: F401

config = context.config
env_config = load_config()
async_dsn = re.sub(
    r"^postgresql(\+[\w]+)?://", "postgresql+asyncpg://", env_config.postgres_dsn
)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting, using the configured DSN"""
    url = config.get_main_option("sqlalchemy.url") or env_config.postgres_dsn
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(sync_connection) -> None:
    context.configure(connection=sync_connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = create_async_engine(async_dsn, poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
