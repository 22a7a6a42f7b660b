from .category import Category
from .supplier import Supplier
from .user import User
from .item import Item, UnitKind
from .movement import Movement, MovementKind

__all__ = ["Category", "Supplier", "User", "Item", "UnitKind", "Movement", "MovementKind"]
