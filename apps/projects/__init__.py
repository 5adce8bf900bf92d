"""
Projects app.

Owns the records an orchestration is launched from: projects, their designs,
and the tickets selected for a launch.
"""
