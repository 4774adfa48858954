"""Process-wide logging configuration"""

from panelbase.core.logging.setup import UTCFormatter, configure_logging

__all__ = ["UTCFormatter", "configure_logging"]
