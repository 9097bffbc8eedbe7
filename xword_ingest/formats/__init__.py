"""
Format descriptor sub-package for xword-ingest.

Contains one YAML file per supported puzzle encoding. The loader module
(format_registry.py in the parent package) reads these files at runtime.
"""
