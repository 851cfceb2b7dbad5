"""Command line extraction of ZipCrypto protected archives.

Examples:
  python -m unzippy clouddb.zip -d ./temp -p 20220901
  UNZIPPY_PASSWORD=20220901 unzippy clouddb.zip -d ./temp
  unzippy clouddb.zip --list
"""

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from . import __version__
from .exceptions import UnzippyException
from .zipfile import ZipFile

logger = logging.getLogger('unzippy')

PASSWORD_ENV: str = 'UNZIPPY_PASSWORD'


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='unzippy',
        description='Extract zip archives protected with traditional PKWARE encryption (ZipCrypto).',
        epilog=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument('archive', help='Path to the zip archive')
    parser.add_argument(
        '-d', '--dest',
        default='.',
        help='Destination folder (default: current directory)',
    )
    parser.add_argument(
        '-p', '--password',
        default=None,
        help=f'Archive password. Falls back to ${PASSWORD_ENV}. Without it entries are not decrypted',
    )
    parser.add_argument(
        '--encoding',
        default='utf-8',
        help='Encoding of file names and of the password (default: utf-8)',
    )
    parser.add_argument(
        '--verify',
        action='store_true',
        help='Check every encryption header against entry CRC and stop on wrong password',
    )
    parser.add_argument(
        '-k', '--keep-going',
        action='store_true',
        help='Skip entries that fail instead of aborting the whole run',
    )
    parser.add_argument(
        '-j', '--jobs',
        type=int,
        default=1,
        help='Number of entries decoded at the same time (default: 1)',
    )
    parser.add_argument(
        '-l', '--list',
        action='store_true',
        help='List entries instead of extracting them',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    password = args.password if args.password is not None else os.environ.get(PASSWORD_ENV) or None

    try:
        with ZipFile.open(args.archive, password, args.encoding, verify=args.verify) as z:
            if args.list:
                for entry in z.infolist():
                    print(f'{entry.uncompressed_size:>12}  {entry.compression_name:<10} {entry.encryption_method:<12} {entry.filename}')
                return 0

            failures = z.extract_all(args.dest, continue_on_error=args.keep_going, workers=max(1, args.jobs))
    except (UnzippyException, OSError) as e:
        logger.error('%s: %s', args.archive, e)
        return 1

    if failures:
        logger.error('%d entries failed to extract', len(failures))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
