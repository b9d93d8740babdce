"""Published capability naming helpers.

Format: ``{backend}_{capability}``. A single underscore separates the backend
name and the backend's own identifier; the latter may itself contain underscores.
"""

from __future__ import annotations

from mcp_guard.descriptors import BackendName


def build_published_name(backend: BackendName | str, original: str) -> str:
    """Return the identifier a backend capability is republished under.

    Raises:
        ValueError: If the original identifier is empty
    """
    if not original:
        raise ValueError("Capability name must be non-empty")

    return f"{backend}_{original}"
