"""Request dependencies shared by the routers."""

from fastapi import Request

from eventreg.services.cache import CountCache


def get_count_cache(request: Request) -> CountCache:
    """The process-wide count cache created by the application lifespan."""
    return request.app.state.count_cache
