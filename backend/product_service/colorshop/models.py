# colorshop/backend/product_service/colorshop/models.py

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text

from .db import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    brand = Column(String(255), nullable=False, index=True)
    color = Column(String(255), nullable=True)
    color_code = Column(String(32), nullable=True)  # Hex code like "#FF5733"
    image_url = Column(String(2048), nullable=True)  # URL can be long
    image_handle = Column(String(1024), nullable=True)  # Blob name, used for deletion
    size = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    last_updated = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', brand='{self.brand}', quantity={self.quantity})>"


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Admin(id={self.id}, username='{self.username}')>"
