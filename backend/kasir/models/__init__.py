from .stock import StockRecord, StockMovement
from .shifts import ShiftSession, PosTransaction
from .opname import StockOpname, StockOpnameItem

__all__ = [
    'StockRecord', 'StockMovement',
    'ShiftSession', 'PosTransaction',
    'StockOpname', 'StockOpnameItem',
]
