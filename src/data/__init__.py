"""Packaged YAML tables: SLA presets and license-board classifications."""
