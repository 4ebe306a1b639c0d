"""Infrastructure Layer: Contains concrete implementations and adapters.

Storage backends implementing the domain Store interface, configuration
loading, logging setup and console display for the CLI.
"""
