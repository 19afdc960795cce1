"""Configuration — install paths and the optional YAML config file."""
