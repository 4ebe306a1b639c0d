"""Domain Interfaces (Ports):

Defines the contracts that infrastructure components must satisfy. Core
application logic depends on these interfaces, not concrete implementations.
"""
