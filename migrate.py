#!/usr/bin/env python3
"""
Migraciones de base de datos con Alembic.

Uso:
  python migrate.py create 'mensaje'   # Autogenerar migración desde los modelos
  python migrate.py upgrade [rev]      # Aplicar migraciones (por defecto head)
  python migrate.py downgrade [rev]    # Revertir (por defecto -1)
  python migrate.py stamp [rev]        # Marcar revisión sin ejecutar
  python migrate.py history | current
"""
import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from app.core.config import settings

root_dir = Path(__file__).parent
logger = logging.getLogger("migrate")


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    logger.info(f"Migración creada: {message}")


def upgrade(revision: str = "head"):
    command.upgrade(get_alembic_config(), revision)
    logger.info(f"Base de datos actualizada a {revision}")


def downgrade(revision: str = "-1"):
    command.downgrade(get_alembic_config(), revision)
    logger.info(f"Base de datos revertida a {revision}")


def stamp(revision: str = "head"):
    command.stamp(get_alembic_config(), revision)


def show_history():
    command.history(get_alembic_config())


def show_current():
    command.current(get_alembic_config())


ACTIONS = {
    "upgrade": upgrade,
    "downgrade": downgrade,
    "stamp": stamp,
    "history": show_history,
    "current": show_current,
}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    action, args = sys.argv[1], sys.argv[2:]

    if action == "create":
        if not args:
            logger.error("Se requiere un mensaje para la migración")
            sys.exit(1)
        create_migration(args[0])
    elif action in ACTIONS:
        ACTIONS[action](*args[:1])
    else:
        logger.error(f"Acción desconocida: {action}")
        sys.exit(1)
