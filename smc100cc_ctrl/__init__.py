"""
Stage controller daemon for the Newport SMC100CC motion controller.

Discovers the controller on its USB-serial link, keeps the connection alive,
homes the stage and drives it to targets received over an HTTP property bridge.
"""

__version__ = "1.0.0"
