from __future__ import annotations

import uuid


def generate_id() -> str:
    """Opaque string identifier (UUID4 text) used for principals, events and movements."""
    return str(uuid.uuid4())
