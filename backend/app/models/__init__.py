from .inventory import Product, StockMovement
from .stocktakes import StocktakeSession, StocktakeItem

__all__ = [
    'Product', 'StockMovement',
    'StocktakeSession', 'StocktakeItem',
]
