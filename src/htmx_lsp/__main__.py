"""Allow ``python -m htmx_lsp``."""

from .cli.main import app

app()
