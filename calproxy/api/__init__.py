"""aiohttp application serving the cached aggregate."""
