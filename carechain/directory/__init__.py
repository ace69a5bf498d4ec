# carechain/directory/__init__.py
"""
Organization directories: who may append blocks and which key material they use.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Set

SHARED_KEY_ID = "shared"


class OrgDirectory(ABC):
    """Capability the ledger needs from whatever stores organizations and keys."""

    @abstractmethod
    def is_validator(self, org_id: str) -> bool:
        pass

    @abstractmethod
    def get_key(self, org_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def all_org_ids(self) -> Set[str]:
        pass


def create_directory(uri: str) -> OrgDirectory:
    stripped = uri.strip()
    if stripped.startswith("env:"):
        from .static import StaticDirectory
        prefix = stripped[len("env:"):] or "CARECHAIN_KEY_"
        return StaticDirectory.from_env(prefix=prefix)

    elif stripped.startswith("file:"):
        from .static import StaticDirectory
        return StaticDirectory.from_file(Path(stripped[len("file:"):]).expanduser().resolve())

    elif stripped and ":" not in stripped.split("/")[0]:
        # Plain file path → treat as file: URI
        from .static import StaticDirectory
        return StaticDirectory.from_file(Path(stripped).expanduser().resolve())

    else:
        raise ValueError(f"Unsupported directory URI: {uri}")


from .static import StaticDirectory, demo_directory

__all__ = ["OrgDirectory", "SHARED_KEY_ID", "StaticDirectory", "create_directory", "demo_directory"]
