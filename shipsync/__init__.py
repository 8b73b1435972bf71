"""
shipsync - keeps shipment records in sync with the ECCANG SOAP order service.
"""

__version__ = "1.0.0"
