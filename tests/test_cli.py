import io
import tempfile
import unittest

from contextlib import redirect_stdout, redirect_stderr
from pathlib import Path
from unittest import mock

from atmfjstc.lib.obby_file import cli
from atmfjstc.lib.obby_file.cli import main

from obby_samples import PLUGIN_JSON, build_obby, build_header, build_entry_record


MAIN_JS = b'module.exports = class Plugin {};\n' * 20


class CLITest(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.temp_dir.name)

        self.archive_path = self.base / 'plugin.obby'
        self.archive_path.write_bytes(build_obby([
            ('plugin.json', PLUGIN_JSON, False),
            ('main.js', MAIN_JS, True),
            ('assets/icon.svg', b'<svg/>', False),
        ]))

    def tearDown(self):
        self.temp_dir.cleanup()

    def _run(self, *args: str) -> str:
        stdout = io.StringIO()

        with redirect_stdout(stdout):
            main(list(args))

        return stdout.getvalue()

    def _run_failing(self, *args: str) -> str:
        stdout = io.StringIO()
        stderr = io.StringIO()

        with redirect_stdout(stdout), redirect_stderr(stderr):
            with self.assertRaises(SystemExit) as cm:
                main(list(args))

        self.assertNotEqual(cm.exception.code, 0)

        return stderr.getvalue()

    def test_list(self):
        output = self._run('list', str(self.archive_path))

        self.assertEqual(output.splitlines(), ['plugin.json', 'main.js', 'assets/icon.svg'])

    def test_verbose_logs_header(self):
        with self.assertLogs('atmfjstc.lib.obby_file.cli', level='DEBUG') as logs:
            output = self._run('-v', 'list', str(self.archive_path))

        self.assertEqual(output.splitlines(), ['plugin.json', 'main.js', 'assets/icon.svg'])
        self.assertTrue(any('API version: 1.0' in line for line in logs.output))

    def test_info(self):
        output = self._run('info', str(self.archive_path))

        self.assertIn('TestPlugin', output)
        self.assertIn('Entry count:', output)
        self.assertRegex(output, r'\*\s+main\.js')
        self.assertNotRegex(output, r'\*\s+plugin\.json')

    def test_plugin_json(self):
        output = self._run('plugin-json', str(self.archive_path))

        self.assertEqual(output, PLUGIN_JSON.decode('utf-8') + '\n')

    def test_extract_to_file(self):
        output_path = self.base / 'main.js'

        self._run('-q', 'extract', str(self.archive_path), 'main.js', '-o', str(output_path))

        self.assertEqual(output_path.read_bytes(), MAIN_JS)

    def test_unpack(self):
        dest = self.base / 'out'

        self._run('-q', 'unpack', str(self.archive_path), str(dest))

        self.assertEqual((dest / 'plugin.json').read_bytes(), PLUGIN_JSON)
        self.assertEqual((dest / 'main.js').read_bytes(), MAIN_JS)
        self.assertEqual((dest / 'assets' / 'icon.svg').read_bytes(), b'<svg/>')

    def test_unpack_refuses_escaping_names(self):
        evil_path = self.base / 'evil.obby'
        evil_path.write_bytes(build_obby([('ok.txt', b'ok', False), ('../escape.txt', b'bad', False)]))
        dest = self.base / 'out'

        errors = self._run_failing('unpack', str(evil_path), str(dest))

        self.assertIn('../escape.txt', errors)
        self.assertFalse((self.base / 'escape.txt').exists())
        self.assertFalse((dest / 'ok.txt').exists())

    def test_unpack_refuses_clashing_paths(self):
        dest = self.base / 'out'

        for entries in [
            [('a', b'file', False), ('a/b', b'nested', False)],
            [('a/b/c.txt', b'nested', False), ('a', b'file', False)],
            [('x/y.txt', b'1', False), ('x\\y.txt', b'2', False)],
        ]:
            with self.subTest(names=[name for name, _, _ in entries]):
                clashing_path = self.base / 'clashing.obby'
                clashing_path.write_bytes(build_obby(entries))

                errors = self._run_failing('unpack', str(clashing_path), str(dest))

                self.assertIn('Refusing to unpack', errors)
                self.assertFalse(dest.exists())

    def test_missing_entry(self):
        errors = self._run_failing('extract', str(self.archive_path), 'nope.js', '-o', str(self.base / 'x'))

        self.assertIn("Entry 'nope.js' not found", errors)
        self.assertFalse((self.base / 'x').exists())

    def test_not_an_archive(self):
        bogus = self.base / 'bogus.obby'
        bogus.write_bytes(b'PK\x03\x04' + b'\x00' * 100)

        errors = self._run_failing('list', str(bogus))

        self.assertIn('not an OBBY file', errors)

    def test_truncated_archive_reports_cause(self):
        truncated = self.base / 'truncated.obby'
        truncated.write_bytes(build_header(entry_count=2) + build_entry_record('a', 1, 1))

        errors = self._run_failing('list', str(truncated))

        self.assertIn('truncated', errors)
        self.assertIn('name of entry #1', errors)

    def test_missing_archive(self):
        errors = self._run_failing('list', str(self.base / 'nope.obby'))

        self.assertIn('nope.obby', errors)

    def test_unexpected_error_shows_traceback(self):
        with mock.patch.object(cli, 'ObbyFile', side_effect=RuntimeError("boom")):
            errors = self._run_failing('list', str(self.archive_path))

        self.assertIn('Traceback', errors)
        self.assertIn('RuntimeError: boom', errors)

    def test_quiet_suppresses_progress_only(self):
        dest = self.base / 'out'

        quiet_output = self._run('-q', 'unpack', str(self.archive_path), str(dest))
        normal_output = self._run('unpack', str(self.archive_path), str(dest))

        self.assertEqual(quiet_output, '')
        self.assertIn('Extracting main.js...', normal_output)
        self.assertIn('Unpacked 3 entries', normal_output)
