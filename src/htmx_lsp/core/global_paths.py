"""Platform directory paths for the htmx language client.

Directories follow the platform conventions exposed by ``platformdirs``. None
are created here; the logger creates its directory before opening a file.
"""

from pathlib import Path
from platformdirs import user_config_dir, user_data_dir

APP_NAME = "htmx-lsp"


class GlobalPath:
    """Global path management for htmx-lsp directories."""

    @classmethod
    def data(cls) -> str:
        """Application data directory."""
        return user_data_dir(APP_NAME)

    @classmethod
    def bin(cls) -> str:
        """Directory searched after PATH when resolving the server executable."""
        return str(Path(cls.data()) / "bin")

    @classmethod
    def log(cls) -> str:
        """Log file directory."""
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        """Configuration directory."""
        return user_config_dir(APP_NAME)
