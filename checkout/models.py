from sqlalchemy import Column, String, Integer
from checkout.database import Base


class CheckoutAttempt(Base):
    __tablename__ = "checkout_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, index=True)           # gateway order id, may be absent for redirect
    target_kind = Column(String)                    # link | qr
    target_id = Column(String, index=True)
    amount = Column(Integer)                        # minor units
    currency = Column(String)
    gateway_mode = Column(String)                   # embedded | redirect
    status = Column(String)                         # created | redirected | verified | rejected | failed | abandoned
