"""
app.py — Flask application factory for the herbal dictionary core.

Initializes the Flask app configuration, configures logging, creates the
dictionary database schema on startup and exposes a request-scoped
TermService through get_term_service(). The admin route handlers are
registered by the presentation layer on the returned app.

Run: python app.py → checks the dictionary database and prints its health
"""

import logging
import os

from flask import Flask, current_app, g

from dictionary_database import (
    get_dictionary_db_path,
    init_dictionary_db,
    check_dictionary_db_health,
    SqliteTermRepository,
)
from term_service import TermService
from utils.backup import get_backup_dir

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging():
    """Configure root logging once; LOG_LEVEL env var selects the level."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


def create_app(test_config=None):
    """Create and configure the Flask application."""
    configure_logging()

    app = Flask(__name__)
    app.config.from_mapping(
        DICTIONARY_DB_PATH=get_dictionary_db_path(),
        BACKUP_DIR=get_backup_dir(),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize the dictionary database
    with app.app_context():
        init_dictionary_db(app.config['DICTIONARY_DB_PATH'])
        healthy, message = check_dictionary_db_health(app.config['DICTIONARY_DB_PATH'])
        if healthy:
            app.logger.info(message)
        else:
            app.logger.warning("Dictionary database unavailable: %s", message)

    app.teardown_appcontext(_drop_term_service)

    return app


def get_term_service() -> TermService:
    """TermService for the current app context, created on first use."""
    if 'term_service' not in g:
        repository = SqliteTermRepository(current_app.config['DICTIONARY_DB_PATH'])
        g.term_service = TermService(repository)
    return g.term_service


def _drop_term_service(exc=None):
    g.pop('term_service', None)


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        healthy, message = check_dictionary_db_health(app.config['DICTIONARY_DB_PATH'])
        print(message)
