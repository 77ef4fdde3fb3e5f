from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status


def get_actor_id(x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id")) -> Optional[str]:
    """
    Identity of the caller recorded on movements, postings and audit events.

    Authentication happens upstream; this service only trusts the header.
    """
    if x_actor_id is None:
        return None
    actor_id = x_actor_id.strip()
    if len(actor_id) > 64:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id cannot be more than 64 characters.",
        )
    return actor_id or None
