"""Entry point for `python -m chorus.cli` command."""

import sys

HELP = """chorus - Dialogue generation and playback scheduling

Usage:
    chorus <command> [options]

Commands:
    version     Show version information
    config      Validate or show the configuration
    simulate    Run a scripted multi-agent dialogue simulation
    help        Show this help message
"""


def run_version(args: list[str]) -> int:
    from chorus import __version__

    print(f"chorus {__version__}")
    return 0


def run_config(args: list[str]) -> int:
    from chorus.cli.config import run_config_command

    return run_config_command(args)


def run_simulate(args: list[str]) -> int:
    import asyncio

    from chorus.cli.simulate import run_simulate_command

    return asyncio.run(run_simulate_command(args))


COMMANDS = {
    "version": run_version,
    "config": run_config,
    "simulate": run_simulate,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the chorus CLI."""
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ("-h", "--help", "help"):
        print(HELP)
        return 0

    command = COMMANDS.get(args[0])
    if command is None:
        print(f"Unknown command: {args[0]}")
        print(HELP)
        return 1
    return command(args[1:])


if __name__ == "__main__":
    sys.exit(main())
