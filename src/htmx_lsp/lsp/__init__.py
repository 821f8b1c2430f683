"""Language Server Protocol client for the htmx language server.

Example:
    from htmx_lsp.lsp.client import ClientIdentity, ClientOptions, LanguageClient
    from htmx_lsp.lsp.launch import LaunchMode, server_options
    from htmx_lsp.lsp.selector import DocumentSelector

    client = LanguageClient(
        ClientIdentity(id="htmx-lsp", display_name="Htmx Language Server"),
        server_options(config.server),
        ClientOptions(document_selector=DocumentSelector.of({"scheme": "file", "language": "html"})),
        mode=LaunchMode.RUN,
    )
    await client.start()
    ...
    await client.stop()
"""

from .errors import (
    ChannelError,
    ConfigurationError,
    HandshakeError,
    LanguageClientError,
    ResponseError,
    SpawnError,
)
from .launch import LaunchConfiguration, LaunchMode, ServerOptions, resolve, server_options
from .selector import DocumentFilter, DocumentSelector

__all__ = [
    "ChannelError",
    "ConfigurationError",
    "DocumentFilter",
    "DocumentSelector",
    "HandshakeError",
    "LanguageClientError",
    "LaunchConfiguration",
    "LaunchMode",
    "ResponseError",
    "ServerOptions",
    "SpawnError",
    "resolve",
    "server_options",
]
