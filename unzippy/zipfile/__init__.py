from ._zip_algorythms import DECOMPRESSORS, Decoders, decrypt_entry
from .zipfile import ZipFile
