# app/cli/cleanup_address_cache.py
import asyncio
import click

from app.core.config import get_settings
from app.database import async_session
from app.services.container import build_services

@click.command()
@click.option('--days', type=int, default=None, help='Remove entries unused for this many days (default: ADDRESS_CACHE_MAX_AGE_DAYS)')
@click.option('--stats-only', is_flag=True, help='Print cache statistics without deleting anything')
def cleanup_address_cache(days, stats_only):
    """Purge stale carrier address-book mappings"""
    settings = get_settings()
    max_age = days if days is not None else settings.ADDRESS_CACHE_MAX_AGE_DAYS
    if max_age < 1:
        raise click.BadParameter("must be at least 1", param_hint="--days")

    async def _cleanup():
        cache = build_services(settings, async_session).address_cache

        before = await cache.statistics()
        click.echo(f"Address cache: {before['total_addresses']} entries, "
                   f"{before['recent_addresses']} used in the last 24h")
        if stats_only:
            return

        removed = await cache.purge_older_than(max_age)
        after = await cache.statistics()
        click.echo(f"Removed {removed} entries older than {max_age} days; {after['total_addresses']} remain")

    asyncio.run(_cleanup())

if __name__ == "__main__":
    cleanup_address_cache()
