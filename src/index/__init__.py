"""Index module - theoretical index points, compositions and setup."""

from .models import AssetPosition, CompositionSnapshot, DailyIndexPoint, RebalanceAction
from .methodology import Methodology

__all__ = ["AssetPosition", "CompositionSnapshot", "DailyIndexPoint", "RebalanceAction", "Methodology"]
