from .catalog import Product, StockReservation
from .orders import Order, OrderEvent
from .requests import CancellationRequest, ReturnRequest, ReturnedOrderArchive
from .notifications import Notification

__all__ = [
    'Product', 'StockReservation',
    'Order', 'OrderEvent',
    'CancellationRequest', 'ReturnRequest', 'ReturnedOrderArchive',
    'Notification',
]
