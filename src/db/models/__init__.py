from .base import Base
from .index import IndexDefinition, IndexComposition, IndexCompositionVersion
from .history import IndexHistoryPoint
from .rebalance_log import IndexRebalanceLog
from .checkpoint import IndexCronCheckpoint
