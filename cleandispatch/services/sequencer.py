"""Customer-visible order numbering (dense 1..N)"""

import logging

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from ..models import Order

logger = logging.getLogger(__name__)

# Create retries when two bookings race for the same number
ORDER_NUMBER_MAX_RETRIES = 5


class OrderSequencer:
    """
    Allocates and repairs order numbers. Both operations run inside the
    caller's transaction; the unique constraint on orders.order_number is the
    final arbiter for concurrent allocations.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_order_number(self) -> int:
        current_max = self.db.query(func.max(Order.order_number)).scalar()
        return (current_max or 0) + 1

    def renumber_after_delete(self) -> int:
        """
        Re-sequence surviving orders to 1..N by creation time.

        Two passes so no intermediate state collides on the unique index:
        first move every number into the negative range, then assign finals.
        Returns the number of surviving orders.
        """
        self.db.flush()
        self._lock_orders_table()

        self.db.query(Order).update(
            {Order.order_number: -Order.order_number}, synchronize_session=False
        )

        order_ids = [
            row.id
            for row in self.db.query(Order.id).order_by(Order.created_at.asc(), Order.id.asc()).all()
        ]
        for number, order_id in enumerate(order_ids, start=1):
            self.db.query(Order).filter(Order.id == order_id).update(
                {Order.order_number: number}, synchronize_session=False
            )

        self.db.expire_all()
        logger.info(f"🔢 Renumbered {len(order_ids)} orders")
        return len(order_ids)

    def _lock_orders_table(self) -> None:
        # Blocks concurrent inserts/deletes until the renumbering transaction ends
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text("LOCK TABLE orders IN SHARE ROW EXCLUSIVE MODE"))
