"""HTTP endpoint module for termrelay.

Serves the control endpoint (create, input, resize, kill) and the
server-sent event stream that carries a session's output to viewers.
"""
