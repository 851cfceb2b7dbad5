"""Extraction of zip archives protected with traditional PKWARE encryption (ZipCrypto)."""

from ._base_classes import Archive, Entry
from .constants import *
from .exceptions import *
from .zipfile import ZipFile

__version__ = '1.0.0'
