from __future__ import annotations

from backoffice.core.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
