"""Minimal LSP server used by the session tests.

Speaks JSON-RPC over stdio through ``pylsp_jsonrpc`` and appends every
message it receives to the ``--record`` file as one JSON line.
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from pylsp_jsonrpc.streams import JsonRpcStreamReader, JsonRpcStreamWriter


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--record", required=True)
    parser.add_argument("--sync", type=int, default=2)
    parser.add_argument("--diagnostics", action="store_true")
    parser.add_argument("--exit-after-initialized", action="store_true")
    parser.add_argument("--no-initialize-response", action="store_true")
    parser.add_argument("--initialize-error", action="store_true")
    parser.add_argument("--malformed-initialize", action="store_true")
    parser.add_argument("-o", "--log-file")
    options = parser.parse_args()

    record = open(options.record, "a", encoding="utf-8")
    writer = JsonRpcStreamWriter(sys.stdout.buffer)

    def respond(message: dict, result: object) -> None:
        writer.write({"jsonrpc": "2.0", "id": message["id"], "result": result})

    def handle(message: dict) -> None:
        record.write(json.dumps(message) + "\n")
        record.flush()

        method = message.get("method")
        if method == "initialize":
            if options.no_initialize_response:
                return
            if options.initialize_error:
                writer.write({
                    "jsonrpc": "2.0",
                    "id": message["id"],
                    "error": {"code": -32603, "message": "cannot initialize"},
                })
                return
            if options.malformed_initialize:
                respond(message, "not an object")
                return
            respond(message, {
                "capabilities": {
                    "textDocumentSync": options.sync,
                    "hoverProvider": True,
                    "completionProvider": {"triggerCharacters": ["-", "\"", " "]},
                },
                "serverInfo": {"name": "fake-trunkls", "version": "0.0.1"},
            })
        elif method == "initialized":
            if options.exit_after_initialized:
                record.close()
                os._exit(3)
        elif method == "textDocument/didOpen" and options.diagnostics:
            uri = message["params"]["textDocument"]["uri"]
            writer.write({
                "jsonrpc": "2.0",
                "method": "textDocument/publishDiagnostics",
                "params": {
                    "uri": uri,
                    "diagnostics": [{
                        "range": {
                            "start": {"line": 0, "character": 5},
                            "end": {"line": 0, "character": 12},
                        },
                        "message": "unknown attribute hx-gett",
                        "severity": 1,
                        "source": "fake-trunkls",
                    }],
                },
            })
        elif method == "textDocument/hover":
            respond(message, {"contents": "hx-get: issues a GET request"})
        elif method == "textDocument/completion":
            respond(message, {
                "isIncomplete": False,
                "items": [{"label": "hx-get"}, {"label": "hx-post"}],
            })
        elif method == "shutdown":
            respond(message, None)
        elif method == "exit":
            record.close()
            os._exit(0)

    JsonRpcStreamReader(sys.stdin.buffer).listen(handle)
    record.close()


if __name__ == "__main__":
    main()
