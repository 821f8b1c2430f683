"""htmx-lsp-client - editor-side bootstrap for the htmx language server.

Launches ``trunkls`` in run or debug mode, routes matching HTML documents to
it over LSP and ties the session to the extension lifecycle.
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name in ("activate", "deactivate"):
        from . import extension
        return getattr(extension, name)
    if name in ("LanguageClient", "ClientIdentity", "ClientOptions", "ClientState"):
        from .lsp import client
        return getattr(client, name)
    if name in ("Workspace", "ExtensionContext", "ExtensionMode"):
        from . import host
        return getattr(host, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "activate",
    "deactivate",
    "LanguageClient",
    "ClientIdentity",
    "ClientOptions",
    "ClientState",
    "Workspace",
    "ExtensionContext",
    "ExtensionMode",
]
