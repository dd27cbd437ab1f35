"""Application configuration module.

Settings are read from environment variables, with a local ``.env`` file
loaded first when one exists. The database URL follows the same rules as most
hosted Postgres providers: a ``postgres://`` prefix is rewritten to
``postgresql://`` because current SQLAlchemy releases only recognise the
latter. Without a URL the service runs against a local SQLite file.
"""

import os
from dotenv import load_dotenv


class Config:
    """Base configuration class.

    Flask and Flask-SQLAlchemy read their settings from the upper-case
    attributes of this class. Report branding and phone formatting live here
    too so a deployment for another madrasah only needs environment changes.
    """

    load_dotenv()

    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-in-prod')

    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # Only the scheme is rewritten; the rest of the URL is left alone.
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or 'sqlite:///halaqah.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Name used in the opening paragraph of the extended guardian report. An
    # empty value keeps the built-in name from ``report_formatter``.
    INSTITUTION_NAME = os.environ.get('INSTITUTION_NAME', '')

    # Country code that replaces a leading ``0`` in guardian phone numbers.
    PHONE_COUNTRY_PREFIX = os.environ.get('PHONE_COUNTRY_PREFIX', '62')

    # Header carrying the authenticated user id from the upstream auth proxy.
    USER_ID_HEADER = os.environ.get('USER_ID_HEADER', 'X-User-ID')
