"""kitsync CLI - Main command-line interface.

Commands:
- init: Write kitsync.config for the project
- status: Detected version and per-file customization state
- update: Move tracked files to an upstream version, keeping local edits
- fingerprint build: Create the fingerprint database from the upstream snapshot
- hash: Print the normalized hash of a file
"""

import logging

import click
from dotenv import load_dotenv

load_dotenv()


class AliasedGroup(click.Group):
    """A Click group that accepts a few short command aliases."""

    # Maps alias -> canonical command name
    ALIASES: dict[str, str] = {
        "st": "status",
        "stat": "status",
        "upgrade": "update",
        "fp": "fingerprint",
    }

    def get_command(self, ctx, name):
        return super().get_command(ctx, self.ALIASES.get(name, name))


@click.group(cls=AliasedGroup)
@click.option("--verbose", "-v", count=True, help="Show more log output (-vv for debug)")
@click.version_option(package_name="kitsync", prog_name="kitsync")
def main(verbose: int):
    """
    kitsync - Safe updates for vendored templates and commands.

    Keeps your local edits when upstream ships a new release.

    \b
    Command Aliases:
      st, stat -> status
      upgrade -> update
      fp -> fingerprint
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


from kitsync.cli.fingerprint import fingerprint_group, hash_cmd  # noqa: E402
from kitsync.cli.init import init  # noqa: E402
from kitsync.cli.status import status  # noqa: E402
from kitsync.cli.update import update  # noqa: E402

main.add_command(init)
main.add_command(status)
main.add_command(update)
main.add_command(fingerprint_group, name="fingerprint")
main.add_command(hash_cmd, name="hash")


if __name__ == "__main__":
    main()
