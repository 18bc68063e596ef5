from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Optional

import click

from .codec import EncodingMode
from .config import PortConfig, Settings, load_settings
from .connection import PortState
from .errors import SerialConsoleError
from .events import Direction, Event, EventType
from .session import SerialSession


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _settings(ctx: click.Context, baudrate: Optional[int], data_bits: Optional[int], stop_bits: Optional[int],
              parity: Optional[str], flow: Optional[str], timeout: Optional[float],
              hex_mode: Optional[bool], line_feed: Optional[bool], log_dir: Optional[str], no_log: bool) -> Settings:
    # CLI options override values from the config file
    base: Settings = ctx.obj["settings"]
    overrides = {
        "baud_rate": baudrate,
        "data_bits": data_bits,
        "stop_bits": stop_bits,
        "parity": parity,
        "flow_control": flow,
        "read_timeout": timeout,
    }
    values = {
        "baud_rate": base.port.baud_rate,
        "data_bits": base.port.data_bits,
        "stop_bits": base.port.stop_bits,
        "parity": base.port.parity,
        "flow_control": base.port.flow_control,
        "read_timeout": base.port.read_timeout,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        port = PortConfig.from_mapping(values)
    except SerialConsoleError as e:
        raise click.ClickException(str(e))

    settings = replace(base, port=port)
    if hex_mode is not None:
        settings = replace(settings, mode=EncodingMode.HEX if hex_mode else EncodingMode.UTF8)
    if line_feed is not None:
        settings = replace(settings, line_feed=line_feed)
    if log_dir is not None:
        settings = replace(settings, log_dir=log_dir)
    if no_log:
        settings = replace(settings, log_enabled=False)
    return settings


def _format_event(event: Event) -> Optional[str]:
    if event.type is EventType.FRAME:
        frame = event.data
        tag = "TX" if frame.direction is Direction.SENT else "RX"
        payload = event.text if event.text is not None else frame.data.hex().upper()
        return f"[{frame.timestamp.strftime('%H:%M:%S.%f')[:-3]}] {tag} {payload}"
    if event.type is EventType.STATUS:
        return f"-- {event.port}: {event.data.value}"
    return f"!! {event.port or 'log'}: {event.text}"


def serial_options(f):
    f = click.option("--no-log", is_flag=True, default=False, help="Do not write a session log")(f)
    f = click.option("--log-dir", type=click.Path(file_okay=False), help="Directory for the session log")(f)
    f = click.option("--lf/--no-lf", "line_feed", default=None, help="Append a line feed to each command")(f)
    f = click.option("--hex/--utf8", "hex_mode", default=None, help="Hex or UTF-8 payloads")(f)
    f = click.option("-t", "--timeout", type=float, help="Read timeout in seconds")(f)
    f = click.option("--flow", type=click.Choice(["none", "software", "hardware"]), help="Flow control")(f)
    f = click.option("--parity", type=click.Choice(["none", "odd", "even"]), help="Parity")(f)
    f = click.option("--stop-bits", type=click.Choice(["1", "2"]), help="Stop bits")(f)
    f = click.option("--data-bits", type=click.Choice(["5", "6", "7", "8"]), help="Data bits")(f)
    f = click.option("-b", "--baudrate", type=int, help="Baud rate (4800..2000000)")(f)
    return f


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              help="TOML configuration file")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool) -> None:
    """Serial port console: list ports, send commands, monitor traffic."""
    _configure_logging(verbose)
    try:
        settings = load_settings(config_path)
    except SerialConsoleError as e:
        raise click.ClickException(str(e))
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj.setdefault("transport_factory", None)


@main.command()
@click.option("--usb-only", is_flag=True, default=False, help="Only list USB serial adapters")
def ports(usb_only: bool) -> None:
    """List available serial ports."""
    try:
        found = SerialSession.list_ports(usb_only=usb_only)
    except SerialConsoleError as e:
        raise click.ClickException(str(e))
    if not found:
        click.echo("No serial ports found")
        return
    for p in found:
        ident = f" [{p.vid:04X}:{p.pid:04X}]" if p.vid is not None and p.pid is not None else ""
        desc = f" {p.description}" if p.description else ""
        click.echo(f"{p.name}{ident}{desc}")


def _session(ctx: click.Context, settings: Settings, port: str) -> SerialSession:
    factory = ctx.obj.get("transport_factory")
    kwargs = {"log_name": port}
    if factory is not None:
        kwargs["transport_factory"] = factory
    return SerialSession(settings, **kwargs)


@main.command()
@click.argument("port")
@click.argument("text")
@serial_options
@click.option("-w", "--wait", type=float, default=0.0, show_default=True,
              help="Seconds to print received data after sending")
@click.pass_context
def send(ctx: click.Context, port: str, text: str, wait: float, **options) -> None:
    """Send TEXT to PORT once.

    Examples:

      # Send a UTF-8 line
      serial-console send /dev/ttyUSB0 "AT" --lf

      # Send hex bytes and print the reply for one second
      serial-console send COM3 "48 65 6c 6c 6f" --hex -w 1
    """
    settings = _settings(ctx, **options)
    with _session(ctx, settings, port) as session:
        try:
            session.open(port)
            frame = session.send(port, text)
        except SerialConsoleError as e:
            raise click.ClickException(str(e))
        click.echo(f"Sent {len(frame.data) if frame else 0} bytes to {port}")

        if wait > 0:
            deadline = session.clock.now().timestamp() + wait
            while True:
                remaining = deadline - session.clock.now().timestamp()
                if remaining <= 0:
                    break
                event = session.next_event(timeout=remaining)
                if event is None:
                    break
                if event.type is EventType.FRAME and event.data.direction is Direction.RECEIVED:
                    click.echo(_format_event(event))
                elif event.type in (EventType.ERROR, EventType.LOG_ERROR):
                    click.echo(_format_event(event), err=True)


@main.command()
@click.argument("port")
@serial_options
@click.pass_context
def monitor(ctx: click.Context, port: str, **options) -> None:
    """Open PORT, print traffic and send each line typed on stdin.

    End with EOF (Ctrl-D, or Ctrl-Z on Windows) or Ctrl-C.
    """
    settings = _settings(ctx, **options)
    with _session(ctx, settings, port) as session:
        try:
            connection = session.open(port)
        except SerialConsoleError as e:
            raise click.ClickException(str(e))

        done = threading.Event()

        def pump() -> None:
            while not done.is_set() or not session.bus.empty():
                event = session.next_event(timeout=0.1)
                if event is None:
                    continue
                click.echo(_format_event(event), err=event.type in (EventType.ERROR, EventType.LOG_ERROR))

        printer = threading.Thread(target=pump, name="event-printer", daemon=True)
        printer.start()
        try:
            stdin = click.get_text_stream("stdin")
            for line in stdin:
                if connection.state is not PortState.OPEN:
                    break
                try:
                    session.send(port, line.rstrip("\r\n"))
                except SerialConsoleError as e:
                    click.echo(f"!! {e}", err=True)
        except KeyboardInterrupt:
            pass
        finally:
            session.close_all()
            done.set()
            printer.join()


if __name__ == "__main__":
    main()
