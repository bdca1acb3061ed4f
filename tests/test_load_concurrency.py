import concurrent.futures
import os
import shutil
import tempfile
import unittest

from server_harness import (HOST, find_free_port, send_command, start_server, stop_server,
                            wait_until_ready, write_wordlist)


class TestConcurrencyLoad(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix='xword_load_')
        self.wordlist_path = os.path.join(self.tmp, 'words.txt')
        write_wordlist(self.wordlist_path)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_many_concurrent_anagram_requests(self):
        port = find_free_port()
        proc = start_server(port, '--wordlist', self.wordlist_path)
        try:
            wait_until_ready(HOST, port)
            N = 50
            with concurrent.futures.ThreadPoolExecutor(max_workers=N) as ex:
                futs = [ex.submit(send_command, HOST, port, 'ANAGRAM trace') for _ in range(N)]
                results = [f.result(timeout=10) for f in futs]
            for code, cnt, lines in results:
                self.assertEqual(code, 200)
                self.assertEqual(cnt, 3)
                self.assertEqual(lines, ['crate', 'react', 'trace'])
        finally:
            stop_server(proc)

    def test_writers_and_readers_interleaved(self):
        port = find_free_port()
        proc = start_server(port, '--wordlist', self.wordlist_path)
        try:
            wait_until_ready(HOST, port)
            new_words = [a + b + c + 'e' for a in 'bdfh' for b in 'aeiou' for c in 'lmnr']
            with concurrent.futures.ThreadPoolExecutor(max_workers=20) as ex:
                adds = [ex.submit(send_command, HOST, port, f'ADD {w}') for w in new_words]
                reads = [ex.submit(send_command, HOST, port, 'SEARCH 3 c?t') for _ in range(40)]
                add_codes = [f.result(timeout=10)[0] for f in adds]
                read_results = [f.result(timeout=10) for f in reads]
            self.assertEqual(add_codes, [200] * len(new_words))
            for code, cnt, lines in read_results:
                self.assertEqual((code, cnt), (200, 3))
                self.assertEqual(lines, ['cat', 'cot', 'cut', 'SCANNED 2'])
            code, cnt, _ = send_command(HOST, port, 'COUNT 4')
            self.assertEqual(cnt, 8 + len(new_words))
        finally:
            stop_server(proc)


if __name__ == '__main__':
    unittest.main()
