"""
Programmatic Alembic migration runner.

Runs migrations without an alembic.ini by pointing the script location at this
package's migrations directory.

Usage examples:
    python -m control_center.db.run_migrations upgrade head
    python -m control_center.db.run_migrations downgrade -1
    python -m control_center.db.run_migrations stamp head
"""

import logging
import sys
from pathlib import Path
from typing import List

from alembic import command
from alembic.config import Config

from control_center.db.config import get_settings

logger = logging.getLogger(__name__)

# command name -> (callable, default positional args)
_COMMANDS = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "stamp": (command.stamp, ["head"]),
    "history": (command.history, []),
    "current": (command.current, []),
    "heads": (command.heads, []),
}


def build_config() -> Config:
    """Alembic Config bound to the packaged migrations and the configured database."""
    cfg = Config()
    script_location = Path(__file__).resolve().parent / "migrations"
    cfg.set_main_option("script_location", str(script_location))
    # Offline URL; env.py switches to the async URL for online runs.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Run an Alembic command with programmatic configuration."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("No Alembic arguments provided. Example: upgrade head")
        sys.exit(1)

    cmd, other = args[0], args[1:]
    if cmd not in _COMMANDS:
        print(f"Unsupported Alembic command: {cmd}")
        sys.exit(2)

    func, defaults = _COMMANDS[cmd]
    logger.info("alembic %s %s", cmd, " ".join(other or defaults))
    func(build_config(), *(other or defaults))


if __name__ == "__main__":
    main()
