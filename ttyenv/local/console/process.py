import logging
from typing import List
from ttyenv.local.environment import TtyEnvironmentError
from ttyenv.local.console.handler import (
    display_status, get_environment, handle_config_command, handle_create_command, handle_send_command,
    handle_signal_command, handle_start_command, handle_stop_command, handle_wait_command,
    print_help, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'send').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "create": handle_create_command,
        "start": lambda: handle_start_command(args),
        "send": lambda: handle_send_command(args),
        "signal": lambda: handle_signal_command(args),
        "stop": handle_stop_command,
        "kill": lambda: get_environment().kill(),
        "wait": lambda: handle_wait_command(args),
        "status": display_status,
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    try:
        result = command_map[command]()
    except TtyEnvironmentError as e:
        log.error(f"{command}: {e}")
        return False
    except (OSError, ValueError) as e:
        log.error(f"{command} failed: {e}")
        return False

    return command == "exit" and result is True
