"""Kernel domain -- pure helpers with no I/O."""
