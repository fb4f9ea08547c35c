from sqlalchemy import Column, ForeignKey, Integer, String, TIMESTAMP, func
from cardapi.db import Base

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fullname = Column(String(255), nullable=False)

class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_name = Column(String(255), nullable=False)
    balance = Column(Integer, nullable=False, server_default="0")

class Card(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    balance = Column(Integer, nullable=False, server_default="0")
    available = Column(Integer, nullable=False, server_default="0")
    ts = Column(TIMESTAMP(timezone=True), server_default=func.now())

class Authorisation(Base):
    __tablename__ = "authorisations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, server_default="")
    captured = Column(Integer, nullable=False, server_default="0")
    refunded = Column(Integer, nullable=False, server_default="0")
    reversed = Column(Integer, nullable=False, server_default="0")
    ts = Column(TIMESTAMP(timezone=True), server_default=func.now())

# append-only: rows below are inserted by the ledger and never updated

class Movement(Base):
    __tablename__ = "movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, server_default="")
    movement_type = Column(String(16), nullable=False)
    ts = Column(TIMESTAMP(timezone=True), server_default=func.now())

class AuthMovement(Base):
    __tablename__ = "auth_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    authorisation_id = Column(Integer, ForeignKey("authorisations.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, server_default="")
    movement_type = Column(String(16), nullable=False)
    ts = Column(TIMESTAMP(timezone=True), server_default=func.now())
