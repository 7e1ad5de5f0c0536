"""Trade lifecycle engine."""
from .position_manager import PositionManager

__all__ = ["PositionManager"]
