"""Kernel selectors -- the read side.  Selectors never add, flush or delete."""
