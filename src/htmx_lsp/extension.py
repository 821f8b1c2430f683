"""Extension entry points.

The host calls :func:`activate` once when the extension comes up and
:func:`deactivate` (or disposes ``context.subscriptions`` itself) when it
goes away. Activation loads the configuration, resolves both launch
variants, builds the client and starts it eagerly.
"""

from __future__ import annotations

from typing import Optional

from .core.bus import Bus
from .core.config import ConfigManager
from .core.config_schema import ClientConfig, Config
from .host import Disposable, ExtensionContext, ExtensionMode
from .lsp.client import (
    ClientErrorProps,
    ClientErrorReported,
    ClientIdentity,
    ClientOptions,
    LanguageClient,
)
from .lsp.errors import ConfigurationError
from .lsp.launch import LaunchMode, detect_mode, server_options
from .lsp.selector import DocumentSelector
from .util.error import format_error
from .util.log import Log

log = Log.create({"service": "extension"})


def client_identity(config: ClientConfig) -> ClientIdentity:
    return ClientIdentity(id=config.id, display_name=config.name)


def client_options(config: ClientConfig) -> ClientOptions:
    selector = DocumentSelector.of(
        *(entry.model_dump(exclude_none=True) for entry in config.document_selector)
    )
    return ClientOptions(
        document_selector=selector,
        capabilities=dict(config.capabilities),
        initialization_options=config.initialization_options,
        handshake_timeout=config.handshake_timeout,
        shutdown_timeout=config.shutdown_timeout,
    )


def launch_mode(context: ExtensionContext) -> LaunchMode:
    return detect_mode(debugging=context.extension_mode == ExtensionMode.DEVELOPMENT)


def create_client(
    config: Config,
    context: ExtensionContext,
    mode: Optional[LaunchMode] = None,
) -> LanguageClient:
    """Build the client for ``context`` without starting it."""
    return LanguageClient(
        client_identity(config.client),
        server_options(config.server),
        client_options(config.client),
        mode=mode or launch_mode(context),
        workspace=context.workspace,
    )


async def _report_configuration_error(error: ConfigurationError, config: Optional[Config]) -> None:
    defaults = config.client if config is not None else ClientConfig()
    message = format_error(error, defaults.name) or str(error)
    log.error("activation failed", {"client_id": defaults.id, "error": message})
    await Bus.publish(ClientErrorReported, ClientErrorProps(
        client_id=defaults.id,
        kind=error.kind,
        message=message,
    ))


async def activate(context: ExtensionContext, config: Optional[Config] = None) -> LanguageClient:
    """Create and start the client, registering it for teardown.

    Raises:
        ConfigurationError: Invalid configuration; nothing is spawned
        SpawnError: The server executable could not be started
        HandshakeError: The server did not complete initialization
    """
    try:
        if config is None:
            config = await ConfigManager.load(context.workspace.root or ".")
        client = create_client(config, context)
    except ConfigurationError as e:
        await _report_configuration_error(e, config)
        raise

    context.subscriptions.append(Disposable(client.stop))
    log.info("activating", {
        "client_id": client.identity.id,
        "mode": client.mode.value,
        "command": client.launch.command_line(),
    })
    await client.start()
    return client


async def deactivate(context: ExtensionContext) -> None:
    """Dispose everything :func:`activate` registered."""
    await context.dispose_subscriptions()
