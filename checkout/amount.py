from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from checkout.errors import InvalidAmount
from checkout.schemas import AmountMode, CheckoutTarget


class AmountResolver:
    """Works out what the payer owes, in minor currency units."""

    def resolve(self, target: CheckoutTarget, entered: Optional[Union[str, int]] = None) -> int:
        if target.amount_mode is AmountMode.FIXED:
            return target.amount
        return self.parse(entered)

    @staticmethod
    def parse(entered: Optional[Union[str, int]]) -> int:
        if entered is None or isinstance(entered, bool):
            raise InvalidAmount()
        if isinstance(entered, int):
            value = Decimal(entered)
        else:
            text = str(entered).strip()
            if not text:
                raise InvalidAmount()
            try:
                value = Decimal(text)
            except InvalidOperation:
                raise InvalidAmount()

        if not value.is_finite() or value != value.to_integral_value() or value <= 0:
            raise InvalidAmount()
        return int(value)
