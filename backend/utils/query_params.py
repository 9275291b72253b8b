"""Shared query parameter parsing utilities."""

import uuid

from fastapi import HTTPException


def parse_portfolio_ids(portfolio_ids: str | None) -> list[str] | None:
    """Parse comma-separated portfolio IDs string into a validated list.

    Args:
        portfolio_ids: Comma-separated string of portfolio UUIDs, or None.

    Returns:
        List of validated UUID strings, or None if input is empty.

    Raises:
        HTTPException: If any ID is not a valid UUID.
    """
    if not portfolio_ids:
        return None
    result = []
    for pid in portfolio_ids.split(","):
        pid = pid.strip()
        if not pid:
            continue
        try:
            uuid.UUID(pid)
            result.append(pid)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid portfolio ID format: {pid}",
            )
    return result if result else None
