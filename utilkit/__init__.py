"""FIFO buffers, thread signalling, state machines, memory-mapped files and Unix socket utilities."""

__version__ = "0.1.0"