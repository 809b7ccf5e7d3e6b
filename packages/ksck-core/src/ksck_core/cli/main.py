"""ksck CLI - consistency checks for tablet-based storage clusters."""

import typer

from ksck_core.cli.check import check_app

app = typer.Typer(
    name="ksck",
    help="Consistency checker for replicated tablet storage clusters",
    no_args_is_help=True,
)

# Add command groups
app.add_typer(check_app, name="check")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
