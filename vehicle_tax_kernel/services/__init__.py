"""
Kernel services -- the write side.

Services flush within the caller's transaction and never commit; the
service layer (vehicle_tax_services) owns transaction boundaries.
"""
