"""termrelay -- Browser-reachable shell sessions over a pseudo-terminal.

This package spawns real pty-backed login shells, fans their raw output
out to any number of streaming viewers, and accepts keystrokes and
resize requests through a small HTTP control surface.
"""

__version__ = "0.1.0"
