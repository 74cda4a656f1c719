# app/cli/create_tables.py
import asyncio
import click

from app.database import Base, build_engine, database_url

# Import the models so they're registered with the Base
from app import models  # noqa: F401

@click.command()
@click.option('--echo', is_flag=True, help='Echo generated SQL')
def create_tables(echo):
    """Create all database tables directly using SQLAlchemy"""

    async def _create_tables():
        engine = build_engine(database_url)
        engine.echo = echo
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())

if __name__ == "__main__":
    create_tables()
