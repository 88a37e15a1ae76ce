from .stations import Station, DailyRecord, FuelProduct, Nozzle
from .users import User
from .pricing import PriceBook, PriceBookLine
from .shifts import Shift, MeterReading, ShiftReconciliation
from .transactions import Transaction
from .anomalies import DailyAnomaly, MeterAnomaly

__all__ = [
    'Station', 'DailyRecord', 'FuelProduct', 'Nozzle',
    'User',
    'PriceBook', 'PriceBookLine',
    'Shift', 'MeterReading', 'ShiftReconciliation',
    'Transaction',
    'DailyAnomaly', 'MeterAnomaly',
]
