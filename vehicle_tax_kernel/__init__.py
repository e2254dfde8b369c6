"""
Vehicle Tax Kernel

Persistence core of the vehicle-import tax engine:
- Date-effective, versioned bracket tables
- Per-case numbered tax estimations with a one-way DRAFT -> FINAL lifecycle
- Hash-chained audit trail
- Structured logging and typed errors
"""

__version__ = "0.1.0"
