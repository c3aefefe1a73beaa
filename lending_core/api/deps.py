"""
Dependencies shared by the API routers
"""

from typing import Optional

from ..system import LendingSystem


# Global lending system instance, created on first use
_lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system
