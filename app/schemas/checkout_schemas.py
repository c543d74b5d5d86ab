from pydantic import BaseModel
from typing import List


class StockValidationItem(BaseModel):
    product_id: int
    product_name: str
    requested_quantity: int
    available_stock: int


class StockValidationResult(BaseModel):
    valid: bool
    valid_items: List[StockValidationItem]
    invalid_items: List[StockValidationItem]


class OrderTotals(BaseModel):
    subtotal: float
    tax: float
    shipping_cost: float
    total: float       # subtotal + tax + shipping_cost
