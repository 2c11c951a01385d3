"""
nodekeeper - startup and lifecycle supervisor for a long-running node process.

Boot sequence:
    config -> crash handler -> logging -> structured log -> metrics
    -> environment setup -> termination gate -> ordered shutdown
"""

__version__ = "0.3.0"
