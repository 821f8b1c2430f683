"""Configuration schema: Pydantic models for htmx-lsp config files."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_COMMAND = "trunkls"


class DocumentFilterConfig(BaseModel):
    """One ``{scheme, language, pattern}`` entry of the document selector."""
    scheme: Optional[str] = None
    language: Optional[str] = None
    pattern: Optional[str] = None


class ServerConfig(BaseModel):
    """How the language server executable is launched.

    ``command``/``args``/``log_file`` describe the run launch; ``log_file``
    becomes the server's ``--log-file`` argument. ``debug_command`` and
    ``debug_args`` describe the debug launch, which always resolves through
    PATH. ``install_dir`` prefixes a bare run command.
    """
    command: str = DEFAULT_COMMAND
    args: List[str] = Field(default_factory=list)
    install_dir: Optional[str] = None
    log_file: Optional[str] = None
    debug_command: Optional[str] = None
    debug_args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ClientConfig(BaseModel):
    """Client identity, routing and protocol settings."""
    id: str = "htmx-lsp"
    name: str = "Htmx Language Server"
    document_selector: List[DocumentFilterConfig] = Field(
        default_factory=lambda: [DocumentFilterConfig(scheme="file", language="html")]
    )
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    initialization_options: Optional[Any] = None
    handshake_timeout: float = Field(default=10.0, gt=0)
    shutdown_timeout: float = Field(default=5.0, gt=0)

    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    """Logging sinks and format."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json", "pretty"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None


class Config(BaseModel):
    """Top-level htmx-lsp configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="allow")
