# src/table_cutover/__init__.py

__version__ = "0.1.0"
