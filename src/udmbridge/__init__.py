"""udmbridge - HL7 v2 parsing and Universal Data Model transformation."""

__version__ = "0.1.0"
