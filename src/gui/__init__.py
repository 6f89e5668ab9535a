"""GUI layer.

Only background workers live here; widgets are built by the host application
and connect to the workers' ``finished`` signals.
"""
