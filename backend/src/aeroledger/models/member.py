"""Member model holding the stored account balance."""
from sqlalchemy import Column, Numeric, String

from aeroledger.models.base import Base


class Member(Base):
    """
    Flight school member.

    ``account_balance`` is the amount the member owes; negative values are
    account credit. It only moves through ledger transactions.
    """

    __tablename__ = "members"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default="member")
    account_balance = Column(Numeric(12, 2), nullable=False, default=0)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        """String representation."""
        return f"<Member(id={self.id}, email={self.email}, balance={self.account_balance})>"
