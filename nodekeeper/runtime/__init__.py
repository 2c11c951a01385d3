"""
Runtime package - boot sequence, fault handling and shutdown gate.

This is the "application layer":
- Crash guard held for the whole process lifetime
- Wiring: config -> logging -> metrics -> environment -> termination gate
"""
