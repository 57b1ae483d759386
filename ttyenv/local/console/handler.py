import signal
import psutil
import logging
from typing import List, Optional
from ttyenv.local.config import effective_settings as config
from ttyenv.local.environment import ExecutionData, StatusEvent, StatusTracker, TtyEnvironment

log = logging.getLogger(__name__)

_environment: Optional[TtyEnvironment] = None


def _log_status_event(event: StatusEvent) -> None:
    state = "RUNNING" if event.running else "STOPPED"
    suffix = " (installing)" if event.installing else ""
    log.info(f"Server is now {state}{suffix}.")

def get_environment() -> TtyEnvironment:
    """Returns the console's environment, creating it on first use."""
    global _environment
    if _environment is None:
        tracker = StatusTracker()
        tracker.subscribe(_log_status_event)
        _environment = TtyEnvironment(
            config.SERVERS_DIR / config.ENVIRONMENT_NAME,
            name=config.ENVIRONMENT_NAME,
            status_tracker=tracker,
        )
    return _environment

def _on_exit(exit_code: int) -> None:
    if exit_code == 0:
        log.info("Server process exited cleanly.")
    else:
        log.warning(f"Server process exited with code {exit_code}.")

def parse_signal(value: str) -> int:
    """
    Accepts a signal number or name ('15', 'TERM', 'SIGTERM').

    :raises ValueError: If the value names no known signal.
    """
    if value.isdigit():
        return int(value)
    name = value.upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return int(signal.Signals[name])
    except KeyError:
        raise ValueError(f"Unknown signal '{value}'") from None

#* --- Commands ---
def handle_create_command() -> None:
    environment = get_environment()
    environment.create()
    print(f"Created {environment.root_directory}")

def handle_start_command(args: List[str]) -> None:
    """Starts the server process: start <command> [args...]"""
    if not args:
        print("Usage: start <command> [args...]")
        return
    environment = get_environment()
    environment.execute_async(ExecutionData(command=args[0], arguments=args[1:], callback=_on_exit))

def handle_send_command(args: List[str]) -> None:
    if not args:
        print("Usage: send <text>")
        return
    get_environment().execute_in_main_process(" ".join(args))

def handle_signal_command(args: List[str]) -> None:
    if len(args) != 1:
        print("Usage: signal <number|name>")
        return
    get_environment().send_code(parse_signal(args[0]))

def handle_wait_command(args: List[str]) -> None:
    timeout = float(args[0]) if args else float(config.DEFAULT_WAIT_TIMEOUT)
    environment = get_environment()
    if not environment.is_running():
        print("Server is not running.")
        return
    print("Waiting for the server process to exit..." + (f" (killing after {timeout}s)" if timeout > 0 else ""))
    environment.wait_for_main_process_for(timeout)
    print(f"Server process exited with code {environment.last_exit_code}.")

def handle_stop_command() -> None:
    """Asks the server to terminate, force-killing it after GRACEFUL_STOP_TIMEOUT."""
    environment = get_environment()
    if not environment.is_running():
        print("Server is not running.")
        return
    log.info("Stopping server process...")
    environment.send_code(signal.SIGTERM)
    environment.wait_for_main_process_for(config.GRACEFUL_STOP_TIMEOUT)

def display_status() -> None:
    """Shows whether the server runs, its PID, last exit code and resource usage."""
    environment = get_environment()
    print("\n--- Server Status ---")
    print(f"  Directory : {environment.root_directory}")
    if not environment.is_running():
        print("  Status    : STOPPED")
        if environment.last_exit_code is not None:
            print(f"  Last exit : {environment.last_exit_code}")
        print("-" * 21 + "\n")
        return

    print(f"  Status    : RUNNING (PID {environment.pid})")
    try:
        stats = environment.get_stats()
        print(f"  CPU       : {stats.cpu:.1f}%")
        print(f"  MEM       : {stats.memory/1024/1024:.1f} MB")
    except psutil.NoSuchProcess:
        print("  Stats     : process exited while sampling")
    except psutil.AccessDenied:
        print("  Stats     : access denied")
    print("-" * 21 + "\n")

def _config_show() -> None:
    print("\n--- Current Configuration ---")
    for key in sorted(config.MODIFIABLE_SETTINGS):
        print(f"  {key} = {getattr(config, key, 'N/A')}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("-----------------------------\n")

def _config_help() -> None:
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting and save it to overrides.json.")
    print("  config help                - Show this help message.")

def handle_config_command(args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        if len(args) < 3:
            print("Usage: config set <SETTING_NAME> <VALUE>")
            return
        _, message = config.update_setting(args[1].upper(), " ".join(args[2:]))
        print(message)
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")

def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  create                 - Create the server directory.")
    print("  start <cmd> [args...]  - Start the server process in a terminal.")
    print("  send <text>            - Send a line of input to the server.")
    print("  signal <code>          - Send a signal (number or name) to the server.")
    print("  stop                   - Ask the server to stop, killing it after a timeout.")
    print("  kill                   - Kill the server immediately.")
    print("  wait [timeout]         - Wait for the server to exit, killing it after timeout seconds.")
    print("  status                 - Show server status and resource usage.")
    print("  config <cmd>           - Manage configuration. Use 'config help' for more details.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
