"""
Core data model and error taxonomy shared by every engine component.

Nothing in this package performs I/O.
"""

__version__ = "1.0.0"
__status__ = "Production"
