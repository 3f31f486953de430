"""
moscope - Mach-O and Universal binary inspector.

Statically decodes Mach-O images and fat containers into a classified,
immutable model for reverse engineering and security review.
"""

__version__ = "0.1.0"
__author__ = "moscope developers"

from .config import Config
from .errors import MachOError, Anomaly
from .formats.macho import MachO, MachOBinary, load, load_file

__all__ = ['Config', 'MachOError', 'Anomaly', 'MachO', 'MachOBinary', 'load', 'load_file', '__version__']
