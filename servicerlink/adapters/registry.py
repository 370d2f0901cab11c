"""
Adapter registry for servicer integrations.

Maps servicer identifiers to dedicated adapter instances. Lookups are
case-insensitive; "Chase", "chase" and "CHASE" name the same servicer.

Copyright (c) 2025 Graziano Labs Corp.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional

from ..models import normalize_servicer_id, utcnow
from .base import ServicerAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Registry of dedicated servicer adapters.

    Each entry has:
    - Normalized servicer identifier (lower case)
    - Adapter instance
    - Registration timestamp

    Constructed and injected explicitly; there is no process-wide instance.
    """

    def __init__(self):
        """Initialize empty registry."""
        self.adapters: Dict[str, ServicerAdapter] = {}
        self.registered_at: Dict[str, datetime] = {}

    @staticmethod
    def normalize(servicer_id: str) -> str:
        return normalize_servicer_id(servicer_id)

    def register(self, servicer_id: str, adapter: ServicerAdapter, replace: bool = False):
        """
        Register an adapter for a servicer.

        Args:
            servicer_id: Servicer identifier (any case)
            adapter: Adapter instance handling this servicer
            replace: Overwrite an existing registration

        Raises:
            ValueError: If servicer_id already registered and replace is False
        """
        key = self.normalize(servicer_id)
        if key in self.adapters and not replace:
            raise ValueError(f"Servicer '{key}' already registered")

        self.adapters[key] = adapter
        self.registered_at[key] = utcnow()
        logger.info(f"Registered {type(adapter).__name__} for servicer '{key}'")

    def unregister(self, servicer_id: str):
        """
        Remove a servicer's adapter.

        Raises:
            KeyError: If servicer not registered
        """
        key = self.normalize(servicer_id)
        if key not in self.adapters:
            raise KeyError(f"Servicer '{key}' not registered")
        del self.adapters[key]
        del self.registered_at[key]
        logger.info(f"Unregistered adapter for servicer '{key}'")

    def get(self, servicer_id: str) -> Optional[ServicerAdapter]:
        """Adapter for a servicer, or None if none is registered."""
        return self.adapters.get(self.normalize(servicer_id))

    def get_metadata(self, servicer_id: str) -> dict:
        """
        Get metadata for a registered servicer.

        Args:
            servicer_id: Servicer identifier

        Returns:
            Dictionary with servicer metadata

        Raises:
            KeyError: If servicer not registered
        """
        key = self.normalize(servicer_id)
        if key not in self.adapters:
            raise KeyError(f"Servicer '{key}' not registered")
        adapter = self.adapters[key]
        config = adapter.get_config()
        return {
            "id": key,
            "name": config.name,
            "type": config.type.value,
            "adapter": type(adapter).__name__,
            "registered_at": self.registered_at[key].isoformat(),
        }

    def list_servicers(self) -> list[str]:
        """Registered servicer ids in registration order."""
        return list(self.adapters.keys())

    def list_metadata(self) -> list[dict[str, Any]]:
        """List all registered servicers with metadata."""
        return [self.get_metadata(sid) for sid in self.adapters.keys()]

    def __contains__(self, servicer_id: object) -> bool:
        return isinstance(servicer_id, str) and self.normalize(servicer_id) in self.adapters

    def __len__(self) -> int:
        return len(self.adapters)
