# storefront/cart_view.py
from typing import Iterable, List, Optional

from storefront.models import CartLine


class LocalCartView:
    """In-memory projection of the cart that the UI renders.

    Normally replaced wholesale from the cart service listing. The ``*_local``
    mutators exist only for degraded mode, when the cart service is
    unreachable.
    """

    def __init__(self, lines: Iterable[CartLine] = ()) -> None:
        self._lines: List[CartLine] = list(lines)

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def snapshot(self) -> List[CartLine]:
        return [line.model_copy() for line in self._lines]

    def find(self, key: int) -> Optional[CartLine]:
        """Look a line up by its remote id, or by its temporary id."""
        for line in self._lines:
            if line.line_id == key:
                return line
        for line in self._lines:
            if line.line_id is None and line.temp_id == key:
                return line
        return None

    def find_by_product(self, product_id: int, synced_only: bool = False) -> Optional[CartLine]:
        for line in self._lines:
            if line.product_id == product_id and (line.is_synced or not synced_only):
                return line
        return None

    def replace(self, lines: Iterable[CartLine]) -> None:
        self._lines = list(lines)

    def merge(self, line: CartLine) -> None:
        """Put ``line`` in place of the line for the same product, or append it."""
        for index, current in enumerate(self._lines):
            if current.product_id == line.product_id:
                self._lines[index] = line
                return
        self._lines.append(line)

    def clear(self) -> None:
        self._lines = []

    # degraded mode

    def add_local(self, line: CartLine) -> CartLine:
        existing = self.find_by_product(line.product_id)
        if existing is None:
            self._lines.append(line)
            return line
        updated = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
        self._lines[self._index_of(existing)] = updated
        return updated

    def set_quantity_local(self, key: int, quantity: int) -> Optional[CartLine]:
        line = self.find(key)
        if line is None:
            return None
        updated = line.model_copy(update={"quantity": quantity})
        self._lines[self._index_of(line)] = updated
        return updated

    def discard_local(self, key: int) -> Optional[CartLine]:
        line = self.find(key)
        if line is not None:
            del self._lines[self._index_of(line)]
        return line

    def _index_of(self, line: CartLine) -> int:
        return next(index for index, current in enumerate(self._lines) if current is line)
