"""
Bedtime story generator.

Turns a short prompt into a finished bedtime story: generated text,
cover image and narrated audio, driven by a per-story state machine.
"""

__version__ = "1.0.0"
