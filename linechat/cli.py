from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import replace

from .client import ChatClient
from .config import (
    ClientRuntimeConfig,
    ServerRuntimeConfig,
    apply_client_config,
    apply_server_config,
    parse_port,
    read_config_file,
)
from .console import ChatConsole
from .constants import DEFAULT_PORT, NICK_MAX_CHARS, QUIT_SENTINEL
from .logging_config import configure_logging
from .paths import default_config_path
from .service import ChatServer
from .util import normalize_nick, random_nick

log = logging.getLogger("linechat.cli")


def _build_server_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechat-server", description="Run a linechat server")

    p.add_argument(
        "port",
        nargs="?",
        default=None,
        help="TCP port to listen on (overrides the config file)",
    )
    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file",
    )
    p.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    p.add_argument(
        "--max-clients", type=int, default=None, help="Maximum simultaneous clients"
    )
    p.add_argument(
        "--no-progress", action="store_true", help="Skip the startup progress bar"
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    return p


def load_server_config(args: argparse.Namespace) -> ServerRuntimeConfig:
    config_path = str(args.config)
    cfg = ServerRuntimeConfig(config_path=config_path)
    cfg = apply_server_config(cfg, read_config_file(config_path))

    if args.port is not None:
        port = parse_port(args.port, -1)
        if port < 0:
            log.error(
                "Invalid command line port number %r. Using port %s from config file.",
                args.port,
                cfg.port,
            )
        else:
            cfg = replace(cfg, port=port)

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.max_clients is not None:
        cfg = replace(cfg, max_clients=max(1, int(args.max_clients)))
    if args.no_progress:
        cfg = replace(cfg, show_progress=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def server_main(argv: list[str] | None = None) -> None:
    args = _build_server_parser().parse_args(sys.argv[1:] if argv is None else argv)

    # Logging first, so problems in the config file are reported.
    configure_logging(ServerRuntimeConfig(), override_level=args.log_level)
    cfg = load_server_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    if cfg.show_progress:
        ChatConsole().loading_meter("Chat Server is initializing...", steps=100, delay_s=0.01)

    svc = ChatServer(cfg)
    try:
        svc.start()
    except OSError as e:
        log.error("Server error: %s", e)
        raise SystemExit(1) from None
    svc.run_forever()


def _build_client_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechat-client", description="Connect to a linechat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file",
    )
    p.add_argument("--host", default=None, help="Server address (skips the prompt)")
    p.add_argument("--port", default=None, help="Server port (skips the prompt)")
    p.add_argument("--name", default=None, help="Display name (skips the prompt)")
    p.add_argument(
        "--no-progress", action="store_true", help="Skip the connecting progress bar"
    )
    return p


def _prompt_server(console: ChatConsole, cfg: ClientRuntimeConfig) -> ClientRuntimeConfig:
    host = console.prompt("Enter server IP address:", cfg.host).strip() or cfg.host

    port_text = console.prompt("Enter server port:", str(cfg.port)).strip()
    port = cfg.port
    if port_text:
        port = parse_port(port_text, -1)
        if port < 0:
            console.print_warning(f"Invalid port number. Defaulting to port {DEFAULT_PORT}.")
            port = DEFAULT_PORT
    return replace(cfg, host=host, port=port)


def _prompt_name(console: ChatConsole, nick_max_chars: int) -> str:
    while True:
        console.print_line("[Hit ENTER for random username]")
        text = console.prompt("Enter your username:")
        if not text.strip():
            return random_nick()
        name = normalize_nick(text, nick_max_chars)
        if name is not None:
            return name
        console.print_warning(
            f"Usernames must be 1-{nick_max_chars} characters with no spaces."
        )


def client_main(argv: list[str] | None = None) -> None:
    args = _build_client_parser().parse_args(sys.argv[1:] if argv is None else argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = ClientRuntimeConfig(config_path=str(args.config))
    cfg = apply_client_config(cfg, read_config_file(str(args.config)))
    if args.no_progress:
        cfg = replace(cfg, show_progress=False)

    console = ChatConsole()
    console.print_info("Welcome to the Chat App")

    interactive = args.host is None and args.port is None
    try:
        while True:
            if interactive:
                cfg = _prompt_server(console, cfg)
            else:
                if args.host is not None:
                    cfg = replace(cfg, host=str(args.host))
                if args.port is not None:
                    cfg = replace(cfg, port=parse_port(args.port, cfg.port))

            name = args.name or _prompt_name(console, NICK_MAX_CHARS)

            console.print_line("Connecting to the chat server...")
            if cfg.show_progress:
                console.loading_meter("Connecting", steps=100, delay_s=0.01)

            client = ChatClient(cfg, name, console=console)
            try:
                client.connect()
                break
            except OSError as e:
                console.print_error(f"Unable to connect to the server. {e}")
                if not interactive:
                    raise SystemExit(1) from None
    except (KeyboardInterrupt, EOFError):
        console.print_info("Exiting the Chat App. Goodbye!")
        raise SystemExit(0) from None

    console.print_info(f"Connected to the Server. Welcome to the Chat, {name}!")
    console.print_line("Type '/pm username message' to send a private message.")
    console.print_line(f"Type a message and hit Enter to send. Type {QUIT_SENTINEL} to quit.")
    console.print_line("Type /help to see Available Commands")

    def _on_sigint(signum, frame):
        if client.is_retrying:
            client.cancel()
            return
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, _on_sigint)

    try:
        code = client.run(lambda: console.console.input(""))
    except KeyboardInterrupt:
        client.quit()
        code = 0

    console.print_info("Exiting the Chat App. Goodbye!")
    raise SystemExit(code)


if __name__ == "__main__":
    server_main()
