"""Configuration loading and cache composition from settings."""
