from app.models.product import Product
from app.models.order import Order
from app.models.order_item import OrderItem
from app.models.order_history import OrderHistory

# add ALL models here
