"""UDM schema and vendor rule loading for udmbridge."""

from udmbridge.schemas.loader import SchemaField, SchemaLoader, UDMSchema, VendorRules

__all__ = [
    "SchemaField",
    "SchemaLoader",
    "UDMSchema",
    "VendorRules",
]
