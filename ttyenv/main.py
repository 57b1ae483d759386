import sys
import logging
import setproctitle

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import ttyenv.local.console as console
from ttyenv.log.setup import setup_logging


def _shutdown() -> None:
    """Stops a still running server before the console goes away."""
    environment = console.get_environment()
    if environment.is_running():
        log.info("Server is still running. Stopping it before exit...")
        console.execute_command("stop", [])


def main() -> None:
    """The main entry point for the console application."""
    setproctitle.setproctitle("TtyEnv - Console")
    setup_logging(logging.INFO)

    # Non-interactive mode for one-off commands
    if len(sys.argv) > 1:
        command, args = sys.argv[1].lower(), sys.argv[2:]
        if "--verbose" in args:
            console.toggle_verbose_logging()
            args.remove("--verbose")

        console.execute_command(command, args)
        # A one-off start keeps the console attached until the server exits.
        if command == "start":
            console.execute_command("wait", [])
        return

    # Interactive mode
    print("--- Server Management Console ---")
    print("Type 'help' for a list of commands.")

    while True:
        try:
            command_line_str = input("> ")
            if not command_line_str.strip():
                continue
            command_line = command_line_str.strip().split()

            command, args = command_line[0].lower(), command_line[1:]

            log.debug(f"Received command: {command}, args: {args}")

            if console.execute_command(command, args):
                break

        except (KeyboardInterrupt, EOFError):
            log.warning("\nExiting console due to KeyboardInterrupt.")
            break
        except Exception as e:
            log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)

    _shutdown()

if __name__ == "__main__":
    main()
    print("Exiting console application. See you next time!")
