"""State container layer.

Defines what the persistence engine expects from the object that owns
application state, plus a small :class:`Store` that satisfies it.
"""
