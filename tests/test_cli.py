import os
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO
from unittest import mock

from unzippy.__main__ import PASSWORD_ENV, build_argparser, main

from zip_builder import FileSpec, build_archive

PASSWORD: bytes = b'20220901'


class TestCli(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dest: str = os.path.join(self._tmp.name, 'out')
        self.archive: str = os.path.join(self._tmp.name, 'clouddb.zip')
        self.write_archive([
            FileSpec('db/'),
            FileSpec('db/data.txt', b'clouddb contents', method=8),
        ])

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def write_archive(self, files: list[FileSpec]) -> None:
        with open(self.archive, 'wb') as f:
            f.write(build_archive(files, PASSWORD))

    def read_output(self) -> bytes:
        with open(os.path.join(self.dest, 'db', 'data.txt'), 'rb') as f:
            return f.read()

    def test_defaults(self) -> None:
        args = build_argparser().parse_args(['archive.zip'])
        self.assertEqual('.', args.dest)
        self.assertIsNone(args.password)
        self.assertEqual(1, args.jobs)
        self.assertFalse(args.keep_going)

    def test_extract(self) -> None:
        self.assertEqual(0, main([self.archive, '-d', self.dest, '-p', '20220901']))
        self.assertEqual(b'clouddb contents', self.read_output())

    def test_password_from_environment(self) -> None:
        with mock.patch.dict(os.environ, {PASSWORD_ENV: '20220901'}):
            self.assertEqual(0, main([self.archive, '-d', self.dest, '-j', '2']))
        self.assertEqual(b'clouddb contents', self.read_output())

    def test_list(self) -> None:
        out = StringIO()
        with redirect_stdout(out):
            self.assertEqual(0, main([self.archive, '--list']))
        self.assertIn('db/data.txt', out.getvalue())
        self.assertIn('Deflate', out.getvalue())
        self.assertIn('ZipCrypto', out.getvalue())
        self.assertFalse(os.path.exists(self.dest))

    def test_wrong_password_with_verify(self) -> None:
        # One byte check lets a wrong password through with 1/256 chance
        results = [main([self.archive, '-d', self.dest, '-p', pwd, '--verify']) for pwd in ('a', 'b', 'c', 'd')]
        self.assertIn(1, results)

    def test_errors(self) -> None:
        self.assertEqual(1, main([os.path.join(self._tmp.name, 'missing.zip'), '-d', self.dest]))

        with open(self.archive, 'wb') as f:
            f.write(b'not a zip file' * 4)
        self.assertEqual(1, main([self.archive, '-d', self.dest, '-p', '20220901']))

    def test_keep_going(self) -> None:
        self.write_archive([
            FileSpec('db/'),
            FileSpec('db/bad.bin', b'xx', method=77),
            FileSpec('db/data.txt', b'clouddb contents'),
        ])
        self.assertEqual(1, main([self.archive, '-d', self.dest, '-p', '20220901', '-k']))
        self.assertEqual(b'clouddb contents', self.read_output())


if __name__ == '__main__':
    unittest.main()
