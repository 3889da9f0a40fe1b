"""Bundled SQL template sets, one TOML file per dialect."""
