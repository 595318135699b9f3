"""TreeShop: tree-service business operations (leads to paid invoices)."""

__version__ = "0.1.0"
