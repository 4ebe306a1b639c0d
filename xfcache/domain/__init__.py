"""Domain Layer: cache entries, item handles, events and the Store contract.

Has no dependency on the core or infrastructure layers.
"""
