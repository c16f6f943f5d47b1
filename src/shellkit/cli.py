from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from shellkit.core.context import Context
from shellkit.core.errors import ConfigError, JobLimitError, JobTimeoutError, ShellkitError
from shellkit.core.jobs import JobRegistry
from shellkit.dispatch import Args, CommandTable, dispatch
from shellkit.lib.config_parser import RuntimeConfig, apply_config, load_config
from shellkit.shell.interpreter import ExecutionContext
from shellkit.shell.repl import print_result, run_command, run_repl, run_script

logger = logging.getLogger(__name__)

TIMEOUT_STATUS = 124


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging
        quiet: Suppress info logging
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def build_command_table(session: ExecutionContext, config: RuntimeConfig) -> CommandTable:
    """Create the CLI command table bound to a shell session.

    Args:
        session: Shell execution context (variables, jobs, history)
        config: Runtime configuration

    Returns:
        Command table
    """
    table = CommandTable("shellkit")

    @table.register("expand", "Expand $VAR references in the arguments")
    def expand_handler(args: Args) -> int:
        print(session.context.expand(args.join(" ")))
        return 0

    @table.register("exec", "Run one pipeline, e.g. exec 'cat f | sort | uniq'")
    def exec_handler(args: Args) -> int:
        if not len(args):
            logger.error("exec: no pipeline given")
            return 2
        try:
            result = run_command(args.join(" "), session)
        except (ShellkitError, ValueError) as e:
            logger.error(f"{e}")
            return 1
        if result is not None:
            print_result(result)
        return 0

    @table.register("run", "Run a pipeline script file")
    def run_handler(args: Args) -> int:
        script = args.get(1)
        if not script:
            logger.error("run: no script given")
            return 2
        path = Path(session.context.expand(script))
        if not path.is_file():
            logger.error(f"Script not found: {path}")
            return 1
        try:
            run_script(path, session)
        except (ShellkitError, ValueError):
            return 1
        return 0

    @table.register("repl", "Start the interactive shell")
    def repl_handler(args: Args) -> int:
        run_repl(session)
        return 0

    @table.register("bg", "Run commands as concurrent jobs: bg [--timeout S] CMD...")
    def bg_handler(args: Args) -> int:
        timeout_arg = args.has_val("--timeout")
        try:
            timeout = float(timeout_arg) if timeout_arg is not None else config.default_timeout
        except ValueError:
            logger.error(f"Invalid timeout: {timeout_arg}")
            return 2
        commands = args.remaining()
        if not commands:
            logger.error("bg: no commands given")
            return 2

        try:
            job_ids = [session.jobs.background(command) for command in commands]
        except JobLimitError as e:
            logger.error(f"{e}")
            return 1
        exit_code = 0
        for job_id, command in zip(job_ids, commands):
            try:
                status = session.jobs.wait(job_id, timeout=timeout)
            except JobTimeoutError:
                print(f"[{job_id}] timed out  {command}")
                exit_code = max(exit_code, TIMEOUT_STATUS)
                continue
            print(f"[{job_id}] exit {status}  {command}")
            exit_code = max(exit_code, status)
        return exit_code

    return table


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point.

    Args:
        argv: Arguments after the program name (defaults to sys.argv[1:])

    Returns:
        Process exit code
    """
    argv = list(sys.argv[1:] if argv is None else argv)

    parser = argparse.ArgumentParser(
        prog="shellkit",
        description="Bash-flavored scripting runtime: variables, text pipelines and background jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  shellkit expand 'home is $HOME'
  shellkit exec 'cat /etc/passwd | cut 1 : | sort | head 5'
  shellkit bg --timeout 2 'sleep 1' 'false'
  shellkit run script.sksh
  shellkit repl
""",
    )

    general = parser.add_argument_group('General Options')
    general.add_argument(
        '--config',
        type=Path,
        help='YAML runtime configuration file'
    )
    general.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )
    general.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Only log warnings and errors'
    )
    general.add_argument(
        '--strict',
        action='store_true',
        help='Fail pipeline stages on malformed arguments instead of skipping them'
    )
    general.add_argument(
        '--shell',
        help='Shell used to run commands (default: sh)'
    )
    parser.add_argument('command', nargs='?', default='help', help='Command to run')
    parser.add_argument('args', nargs=argparse.REMAINDER, help='Command arguments')

    ns = parser.parse_args(argv)
    setup_logging(verbose=ns.verbose, quiet=ns.quiet)

    try:
        config = load_config(ns.config) if ns.config else RuntimeConfig()
    except ConfigError as e:
        logger.error(f"{e}")
        return 2
    if not ns.verbose and not ns.quiet:
        logging.getLogger().setLevel(config.log_level)

    context = Context()
    context.bootstrap([sys.argv[0], *argv])
    apply_config(config, context)

    shell = ns.shell or config.shell
    session = ExecutionContext(
        context=context,
        jobs=JobRegistry(context=context, shell=shell, max_jobs=config.max_jobs),
        strict=ns.strict or config.strict,
        shell=shell,
    )
    table = build_command_table(session, config)
    return dispatch(table, ["shellkit", ns.command, *ns.args], context=context)


if __name__ == "__main__":
    sys.exit(main())
