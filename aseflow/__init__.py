# File: aseflow/__init__.py
# Location: aseflow/aseflow/__init__.py

"""
aseflow Package.

This package plans the allele-specific expression pipeline: it inspects the
file system, works out which analysis steps are done, blocked or ready, and
writes the command scripts that move the dataset forward.
"""

from .version import __version__
