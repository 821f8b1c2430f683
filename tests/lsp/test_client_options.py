from __future__ import annotations

import os
from pathlib import Path

import pytest

from htmx_lsp.lsp.client import ClientIdentity, ClientOptions, LanguageClient
from htmx_lsp.lsp.document import path_to_uri
from htmx_lsp.lsp.errors import ConfigurationError, ResponseError
from htmx_lsp.lsp.launch import LaunchConfiguration, LaunchMode, ServerOptions
from htmx_lsp.lsp.selector import DocumentSelector
from htmx_lsp.host import Workspace
from tests.helpers import CountingSpawner, fake_server_options, make_client


def test_empty_selector_is_rejected_before_spawning(tmp_path: Path) -> None:
    spawner = CountingSpawner()

    with pytest.raises(ConfigurationError, match="document selector"):
        make_client(
            fake_server_options(tmp_path / "record.jsonl"),
            selector=DocumentSelector(),
            spawner=spawner,
        )

    assert spawner.calls == 0


def test_blank_client_id_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="client id"):
        LanguageClient(
            ClientIdentity(id="  ", display_name="Htmx Language Server"),
            fake_server_options(tmp_path / "record.jsonl"),
            ClientOptions(document_selector=DocumentSelector.of({"language": "html"})),
        )


def test_missing_launch_for_mode_is_rejected() -> None:
    options = ServerOptions(run=LaunchConfiguration(mode=LaunchMode.RUN, command="trunkls"))

    make_client(options, mode=LaunchMode.RUN)
    with pytest.raises(ConfigurationError, match="debug mode"):
        make_client(options, mode=LaunchMode.DEBUG)


def test_blank_command_is_rejected() -> None:
    options = ServerOptions(
        run=LaunchConfiguration(mode=LaunchMode.RUN, command="   "),
        debug=LaunchConfiguration(mode=LaunchMode.DEBUG, command="trunkls"),
    )

    with pytest.raises(ConfigurationError, match="empty command"):
        make_client(options)


def test_launch_follows_mode(tmp_path: Path) -> None:
    options = ServerOptions(
        run=LaunchConfiguration(mode=LaunchMode.RUN, command="/opt/trunk/trunkls", args=("-o", "x.log")),
        debug=LaunchConfiguration(mode=LaunchMode.DEBUG, command="trunkls"),
    )

    assert make_client(options).launch.command == "/opt/trunk/trunkls"
    assert make_client(options, mode=LaunchMode.DEBUG).launch.command == "trunkls"


def test_update_server_options_validates_new_launch(tmp_path: Path) -> None:
    client = make_client(fake_server_options(tmp_path / "record.jsonl"))

    with pytest.raises(ConfigurationError):
        client.update_server_options(ServerOptions())

    corrected = ServerOptions(
        run=LaunchConfiguration(mode=LaunchMode.RUN, command="/usr/local/bin/trunkls"),
        debug=LaunchConfiguration(mode=LaunchMode.DEBUG, command="trunkls"),
    )
    client.update_server_options(corrected)
    assert client.server_options is corrected


@pytest.mark.anyio
async def test_update_server_options_refused_while_running(tmp_path: Path) -> None:
    client = make_client(fake_server_options(tmp_path / "record.jsonl"))

    try:
        await client.start()
        with pytest.raises(ConfigurationError, match="stopped"):
            client.update_server_options(fake_server_options(tmp_path / "other.jsonl"))
    finally:
        await client.stop()


@pytest.mark.anyio
async def test_server_requests_get_default_answers(tmp_path: Path) -> None:
    client = make_client(
        fake_server_options(tmp_path / "record.jsonl"),
        workspace=Workspace(root=str(tmp_path)),
    )

    assert await client._on_request("workspace/configuration", {"items": [{}, {"section": "htmx"}]}) == [None, None]
    assert await client._on_request("client/registerCapability", {"registrations": []}) is None
    assert await client._on_request("window/workDoneProgress/create", {"token": 1}) is None

    folders = await client._on_request("workspace/workspaceFolders", None)
    assert folders == [{"name": os.path.basename(str(tmp_path.resolve())), "uri": path_to_uri(str(tmp_path.resolve()))}]


@pytest.mark.anyio
async def test_unknown_server_request_is_method_not_found(tmp_path: Path) -> None:
    client = make_client(fake_server_options(tmp_path / "record.jsonl"))

    with pytest.raises(ResponseError) as info:
        await client._on_request("htmx/custom", {})

    assert info.value.code == ResponseError.METHOD_NOT_FOUND
    assert info.value.to_lsp()["code"] == -32601
