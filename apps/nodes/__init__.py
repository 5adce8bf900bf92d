"""
Nodes app.

Worker nodes register here, report heartbeats, and poll their dispatch queue
of inbound actions produced by the control plane.
"""
