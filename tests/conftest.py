import os

# Point the module-level engine at SQLite before anything imports fieldops.db.
os.environ.setdefault('DATABASE_URL', 'sqlite://')
