#!/usr/bin/env python3

"""CLI tool to keep a serial port connected and relay its traffic"""

import argparse
import logging
import ok_logging_setup
import ok_serial_supervisor
import sys

from ok_serial_supervisor import DataBits, Parity, StopBits

ok_logging_setup.skip_traceback_for(ok_serial_supervisor.SerialException)


def main():
    parser = argparse.ArgumentParser(
        description="Stay connected to a serial port (reconnecting as needed),"
        " print what it sends, and send it lines from stdin."
    )
    parser.add_argument("port", help="device path, COM name or pyserial URL")
    parser.add_argument(
        "baud", nargs="?", default=115200, type=int, help="baud rate"
    )
    parser.add_argument(
        "--parity",
        "-p",
        default=Parity.NONE.value,
        choices=[p.value for p in Parity],
        help="parity (N, E, O, M, S)",
    )
    parser.add_argument(
        "--stop-bits",
        "-s",
        default=StopBits.ONE.value,
        choices=[s.value for s in StopBits],
        type=float,
        help="stop bits",
    )
    parser.add_argument(
        "--data-bits",
        "-d",
        default=DataBits.EIGHT.value,
        choices=[d.value for d in DataBits],
        type=int,
        help="data bits",
    )
    parser.add_argument(
        "--hex", "-x", action="store_true", help="print received bytes as hex"
    )

    args = parser.parse_args()
    ok_logging_setup.install()

    config = ok_serial_supervisor.PortConfig(
        port=args.port,
        baud=args.baud,
        parity=Parity(args.parity),
        stop_bits=StopBits(args.stop_bits),
        data_bits=DataBits(args.data_bits),
    )

    with ok_serial_supervisor.SerialSupervisor(config) as supervisor:
        supervisor.status_changed.subscribe(log_status)
        supervisor.message_received.subscribe(
            print_hex if args.hex else print_text
        )

        logging.info("🔎 Connecting to %s (%d baud)", args.port, args.baud)
        if not supervisor.connect():
            logging.warning("⏳ %s not available, will keep trying", args.port)

        try:
            for line in sys.stdin:
                if not supervisor.send_message(line.encode()):
                    logging.warning("❌ Not connected, line not sent")
        except KeyboardInterrupt:
            pass


def log_status(event: ok_serial_supervisor.ConnectionStatusChanged):
    if event.connected:
        logging.info("🔌 Connected")
    else:
        logging.warning("🚫 Disconnected")


def print_text(message: ok_serial_supervisor.MessageReceived):
    print(message.data.decode(errors="replace"), end="", flush=True)


def print_hex(message: ok_serial_supervisor.MessageReceived):
    print(message.data.hex(" "), flush=True)


if __name__ == "__main__":
    main()
