# colorshop/backend/product_service/colorshop/__init__.py

__version__ = "1.0.0"
