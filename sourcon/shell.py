# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Command line client: one-shot ``--execute`` or an interactive console."""

import asyncio
import cmd
import getpass
import logging
import shlex
import textwrap

import docopt

from .client import DEFAULT_TIMEOUT, RCON, execute
from .errors import RCONError, RCONTimeoutError, TransportError


log = logging.getLogger(__name__)
DEFAULT_PORT = 27015
_USAGE = """
Usage:
  sourcon [-n] [-v] [-t TIMEOUT]
  sourcon ADDRESS [-p PASSWORD] [-n] [-v] [-t TIMEOUT]
  sourcon ADDRESS -p PASSWORD [-n] [-v] [-t TIMEOUT] -e COMMAND

Arguments:
  ADDRESS       HOST[:PORT] of the server; the port defaults to {port}.

Options:
  -h --help     Show this help.
  -p PASSWORD --password=PASSWORD
                RCON password of the server.
  -e COMMAND --execute=COMMAND
                Run COMMAND, print the response and exit.
  -t TIMEOUT --timeout=TIMEOUT
                Seconds to wait for the server [default: {timeout:g}].
  -n --no-multi
                Don't collect responses spread over several packets.
  -v --verbose  Log protocol traffic to stderr.

Without --execute an interactive console is started. When no ADDRESS is
given, or no password, use !connect from inside the console.
""".format(port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT)


class _Console(cmd.Cmd):
    """Interactive front end for a single :class:`RCON` connection.

    Every line is run on the server, except for those starting with
    ``!`` which control the console itself.

    :class:`cmd.Cmd` is synchronous so the console keeps a private event
    loop and runs each coroutine to completion on it. :meth:`shutdown`
    must be called once the console is done with.
    """

    _BUILTINS = textwrap.dedent("""
        !connect HOST[:PORT] [PASSWORD]
                         open a connection, asking for the password if
                         it isn't given
        !disconnect      close the connection
        !shutdown        stop the server by running 'exit' on it
        !exit            leave the console (as does Ctrl-D)
        """).strip("\n")

    def __init__(self, multi_part=True, timeout=DEFAULT_TIMEOUT):
        super().__init__()
        self.multi_part = multi_part
        self.timeout = timeout
        self.rcon = None
        self.address = None
        self._loop = asyncio.new_event_loop()

    @property
    def prompt(self):
        if self.address is None:
            return "RCON ] "
        return "{}:{} ] ".format(*self.address)

    def _await(self, coroutine):
        return self._loop.run_until_complete(coroutine)

    def open(self, address, password):
        """Replace the current connection with one to ``address``.

        Failures are reported on stdout and leave the console
        disconnected.

        :returns: ``True`` if connected and authenticated.
        """
        self.drop()
        rcon = RCON(address, password, self.timeout, self.multi_part)
        try:
            self._await(rcon.connect())
        except RCONError as exc:
            print("Could not connect:", exc)
            return False
        self.rcon = rcon
        self.address = address
        return True

    def drop(self):
        if self.rcon is not None:
            log.debug("Closing connection to %s:%s", *self.address)
            self._await(self.rcon.close())
        self.rcon = None
        self.address = None

    def shutdown(self):
        """Close the connection and the event loop. Idempotent."""
        if self._loop.is_closed():
            return
        try:
            self.drop()
        finally:
            self._loop.close()

    def emptyline(self):
        pass

    def default(self, line):
        if self.rcon is None:
            print("Not connected. Use !connect to connect to a server.")
            return
        try:
            response = self._await(self.rcon(line))
        except RCONTimeoutError:
            print("No response from server; disconnected.")
        except TransportError:
            print("Lost connection to server.")
        except RCONError as exc:
            print("Error: {}; disconnected.".format(exc))
        else:
            print(response.rstrip("\n"))
            return
        self.drop()

    def do_exit(self, _):
        # 'exit' on its own would stop the server; make that explicit
        print("Use !exit to leave this console or !shutdown to stop "
              "the server.")

    def do_EOF(self, _):
        print()
        return True

    def do_help(self, _):
        print(self._BUILTINS)

    def do_shell(self, line):
        """Run a ``!`` command."""
        try:
            words = shlex.split(line)
        except ValueError as exc:
            print("!{}: {}".format(line, exc))
            return False
        if not words:
            print(self._BUILTINS)
            return False
        name, args = words[0], words[1:]
        builtin = {
            "connect": self._builtin_connect,
            "disconnect": self._builtin_disconnect,
            "shutdown": self._builtin_shutdown,
            "exit": self._builtin_exit,
        }.get(name)
        if builtin is None:
            print("Unknown command !{}".format(name))
            return False
        return builtin(args)

    def _builtin_connect(self, args):
        if len(args) not in (1, 2):
            print("Usage: !connect HOST[:PORT] [PASSWORD]")
            return False
        try:
            address = _parse_address(args[0])
        except ValueError as exc:
            print("!connect:", exc)
            return False
        if len(args) == 2:
            password = args[1]
        else:
            password = getpass.getpass("Password: ")
        self.open(address, password)
        return False

    def _builtin_disconnect(self, args):
        self.drop()
        return False

    def _builtin_shutdown(self, args):
        self.default("exit")
        return False

    def _builtin_exit(self, args):
        return True


def shell(address=None, password=None, multi_part=True,
          timeout=DEFAULT_TIMEOUT):
    """Run the interactive console until the user leaves it.

    :param address: ``(host, port)`` to connect to straight away, if any.
    :param password: password for ``address``; asked for when missing.
    :param bool multi_part: see :class:`RCON`.
    :param timeout: see :class:`RCON`.
    """
    console = _Console(multi_part, timeout)
    try:
        if address:
            if password is None:
                password = getpass.getpass("Password: ")
            console.open(address, password)
        console.cmdloop()
    except KeyboardInterrupt:
        print()
    finally:
        console.shutdown()


def _parse_address(address):
    """Turn ``HOST[:PORT]`` into a ``(host, port)`` tuple.

    :raises ValueError: if the port isn't a number from 1 to 65535.
    """
    host, colon, port = address.partition(":")
    if not colon:
        return host, DEFAULT_PORT
    try:
        number = int(port)
    except ValueError:
        raise ValueError("Port {!r} is not a number".format(port))
    if not 0 < number <= 65535:
        raise ValueError("Port {} is out of range".format(number))
    return host, number


def _parse_timeout(timeout):
    """Parse ``--timeout`` as a positive number of seconds, if given.

    :raises ValueError: if the timeout isn't a positive number.
    """
    if timeout is None:
        return None
    seconds = float(timeout)
    if seconds <= 0:
        raise ValueError("Timeout must be positive")
    return seconds


def _main(argv=None):
    """Entry point for the ``sourcon`` script and ``python -m sourcon``.

    :raises ValueError: if ``ADDRESS`` or ``--timeout`` are invalid.
    """
    options = docopt.docopt(_USAGE, argv)
    if options["--verbose"]:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    else:
        logging.disable(logging.CRITICAL)
    address = options["ADDRESS"]
    if address is not None:
        address = _parse_address(address)
    multi_part = not options["--no-multi"]
    timeout = _parse_timeout(options["--timeout"])
    if options["--execute"] is None:
        shell(address, options["--password"], multi_part, timeout)
        return
    print(asyncio.run(execute(address, options["--password"],
                              options["--execute"], multi_part, timeout)))
