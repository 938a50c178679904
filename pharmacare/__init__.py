"""PharmaCare WhatsApp ordering bot."""

__version__ = "0.1.0"
