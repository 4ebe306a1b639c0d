"""Core Application Layer: the get-or-compute protocol and its expiration policy.

Connects the domain layer with storage backends through the Store interface.
"""
