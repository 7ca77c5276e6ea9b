"""shapeshelf - a personal library of reusable PowerPoint shapes.

Captures shapes from a running PowerPoint, stores them as JSON records
with preview images and native files, and inserts them back.
"""

__version__ = "0.1.0"
