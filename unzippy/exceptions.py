class UnzippyException(Exception):
    """Base class for all unzippy exceptions."""

class BadFile(UnzippyException):
    """Bad file given to unpack."""

class DecompressionError(BadFile):
    """Entry payload was rejected by its codec. Usually means the password is wrong."""

class UnsafePath(BadFile):
    """Entry name points outside of the extraction folder."""

class UnsupportedMethod(UnzippyException):
    """Entry uses compression or encryption that has no registered decoder."""

class ReservedValue(BadFile, UnsupportedMethod):
    """Reserved value found while processing file."""

class FileNotFound(UnzippyException, KeyError):
    """Requested file is not present in the archive."""

class ShortRead(UnzippyException, OSError):
    """Archive ended before the requested byte range could be read."""

class EncryptionError(UnzippyException):
    """Base class for all encryption related exceptions."""

class WrongPassword(EncryptionError):
    """Given password is incorrect. Only raised when verification is requested."""
