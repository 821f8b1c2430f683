"""Core infrastructure modules."""

from .global_paths import GlobalPath
from .bus import Bus, BusEvent

__all__ = ["GlobalPath", "Bus", "BusEvent"]

# Log and ConfigManager are imported from their modules directly to avoid
# circular imports:
#   from htmx_lsp.util.log import Log
#   from htmx_lsp.core.config import ConfigManager
