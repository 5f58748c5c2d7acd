"""
Bearer credential handling.

The API does not issue or verify tokens itself: callers sign in with
Microsoft, obtain a Graph access token, and send it as
``Authorization: Bearer <token>``. The token is passed to Graph unchanged,
and Graph decides whether it is valid.
"""

from typing import Optional

from fastapi import HTTPException, Header


async def get_access_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract the Graph access token from the Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        The raw access token.

    Raises:
        HTTPException: 401 if the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated"
        )

    # Extract token from "Bearer <token>" format
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials"
        )

    return parts[1]
