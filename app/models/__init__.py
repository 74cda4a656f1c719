from .business import Business, WalletTransaction
from .logistics_partner import LogisticsPartner
from .order import DeliveryOrder
from .address_book import AddressBookEntry

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Business',
    'WalletTransaction',
    'LogisticsPartner',
    'DeliveryOrder',
    'AddressBookEntry',
]
