import json
import os
import tempfile
import unittest

from settings import DEFAULTS, apply_env_overrides, load_config, reload_config, validate


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(load_config(None, env={}), validate(DEFAULTS))
        self.assertEqual(load_config(None, env={})['max_workers'], 50)

    def test_clamping(self):
        cfg = validate({'request_timeout': 'abc', 'max_line_length': 10**9, 'max_workers': 0,
                        'max_concurrent_connections': -5})
        self.assertEqual(cfg['request_timeout'], 0.1)
        self.assertEqual(cfg['max_line_length'], 1_000_000)
        self.assertEqual(cfg['max_workers'], 1)
        self.assertEqual(cfg['max_concurrent_connections'], 1)

    def test_env_overrides(self):
        out = apply_env_overrides(dict(DEFAULTS), env={'SERVER_MAX_WORKERS': '7', 'SERVER_REQUEST_TIMEOUT': ''})
        self.assertEqual(out['max_workers'], '7')
        self.assertEqual(out['request_timeout'], DEFAULTS['request_timeout'])

    def test_file_then_env(self):
        fd, path = tempfile.mkstemp(suffix='.json')
        os.close(fd)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'max_workers': 4, 'max_line_length': 200, 'unknown': 1}, f)
            cfg = load_config(path, env={'SERVER_MAX_LINE_LENGTH': '300'})
            self.assertEqual(cfg['max_workers'], 4)
            self.assertEqual(cfg['max_line_length'], 300)
            self.assertNotIn('unknown', cfg)
        finally:
            os.remove(path)

    def test_unreadable_file_falls_back(self):
        fd, path = tempfile.mkstemp(suffix='.json')
        os.close(fd)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                f.write('[1, 2]')
            self.assertEqual(load_config(path, env={}), validate(DEFAULTS))
            self.assertEqual(load_config(path + '.missing', env={}), validate(DEFAULTS))
        finally:
            os.remove(path)

    def test_reload_keeps_worker_pool_size(self):
        fd, path = tempfile.mkstemp(suffix='.json')
        os.close(fd)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'max_workers': 4, 'max_line_length': 200}, f)
            current = load_config(path, env={})
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'max_workers': 99, 'max_line_length': 500}, f)
            cfg = reload_config(current, path, env={})
            self.assertEqual(cfg['max_workers'], 4)
            self.assertEqual(cfg['max_line_length'], 500)
        finally:
            os.remove(path)


if __name__ == '__main__':
    unittest.main()
