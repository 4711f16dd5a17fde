"""Order execution and settlement."""
from .executor import OrderExecutor
from .settlement import Settler, categorize_loss, read_post_mortems

__all__ = ["OrderExecutor", "Settler", "categorize_loss", "read_post_mortems"]
