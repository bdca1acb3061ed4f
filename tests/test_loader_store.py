import gzip
import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path

from index import WordIndex
from loader import data_file_name, ingest_wordlist, load_data_dir, load_wordlist, parse_word_file
from store import SnapshotError, SnapshotStore


class TestParseWordFile(unittest.TestCase):
    def test_fixed_width_split(self):
        self.assertEqual(parse_word_file('3catcotcut', 3), ['cat', 'cot', 'cut'])

    def test_count_mismatch_still_parses(self):
        self.assertEqual(parse_word_file('9lakelime', 4), ['lake', 'lime'])

    def test_missing_count(self):
        self.assertEqual(parse_word_file('catcot', 3), [])
        self.assertEqual(parse_word_file('', 3), [])

    def test_bad_chunks_dropped(self):
        self.assertEqual(parse_word_file('4catc0tcutdo', 3), ['cat', 'cut'])

    def test_trailing_newline(self):
        self.assertEqual(parse_word_file('2abbabc\n', 3), ['abb', 'abc'])

    def test_file_name(self):
        self.assertEqual(data_file_name(4, 5), 'L4.5.txt')


class TestLoadDataDir(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix='xword_data_')

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def write(self, name, content):
        Path(self.tmp, name).write_text(content, encoding='utf-8')

    def test_loads_each_partition(self):
        self.write('L3.2.txt', '3catcotcut')
        self.write('L4.5.txt', '3lakelimelove')
        self.write('L3.1.txt', '2dogact')  # dog belongs to bucket 2
        self.write('notes.txt', 'ignored')
        index = WordIndex()
        self.assertEqual(load_data_dir(index, self.tmp), 7)
        self.assertEqual(index.words_in(3, 2), ('cat', 'cot', 'cut'))
        self.assertEqual(index.words_in(3, 1), ('act',))
        self.assertEqual(index.words_in(4, 5), ('lake', 'lime', 'love'))

    def test_skips_present_words(self):
        self.write('L3.2.txt', '2catcot')
        index = WordIndex()
        index.insert('cat')
        self.assertEqual(load_data_dir(index, self.tmp), 1)
        self.assertEqual(index.count(), 2)

    def test_missing_dir_loads_nothing(self):
        index = WordIndex()
        self.assertEqual(load_data_dir(index, os.path.join(self.tmp, 'absent')), 0)


class TestWordlist(unittest.TestCase):
    def test_load_and_ingest(self):
        fd, path = tempfile.mkstemp(prefix='wordlist_', suffix='.txt')
        os.close(fd)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                f.write('Cat\n\nact\n  dog  \nno\ncat\nx-ray\n')
            words = load_wordlist(path)
            self.assertEqual(words, ['Cat', 'act', 'dog', 'no', 'cat', 'x-ray'])
            index = WordIndex()
            self.assertEqual(ingest_wordlist(index, words), 3)
            self.assertEqual(index.all_words(), ['act', 'cat', 'dog'])
        finally:
            os.remove(path)


class TestSnapshotStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix='xword_store_')

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_missing_file_is_empty(self):
        store = SnapshotStore(os.path.join(self.tmp, 'snap.json'))
        self.assertFalse(store.exists())
        self.assertEqual(store.load(), {})

    def test_save_load_plain_and_gzip(self):
        data = {'L3.2': ['cat', 'cot'], 'L4.5': ['lake']}
        for name in ('snap.json', 'snap.json.gz'):
            store = SnapshotStore(os.path.join(self.tmp, name))
            store.save(data)
            self.assertTrue(store.exists())
            self.assertEqual(store.load(), data)
        raw = gzip.decompress(Path(self.tmp, 'snap.json.gz').read_bytes())
        self.assertEqual(json.loads(raw), data)
        self.assertEqual(sorted(os.listdir(self.tmp)), ['snap.json', 'snap.json.gz'])

    def test_invalid_content_raises(self):
        path = Path(self.tmp, 'snap.json')
        path.write_text('{not json', encoding='utf-8')
        with self.assertRaises(SnapshotError):
            SnapshotStore(path).load()
        path.write_text('["cat"]', encoding='utf-8')
        with self.assertRaises(SnapshotError):
            SnapshotStore(path).load()

    def test_index_write_through_survives_restart(self):
        path = os.path.join(self.tmp, 'nested', 'snap.json')
        index = WordIndex(SnapshotStore(path))
        index.insert('crate')
        index.insert('trace')
        index.remove('crate')
        reopened = WordIndex(SnapshotStore(path))
        self.assertEqual(reopened.export(), {'L5.8': ['trace']})


if __name__ == '__main__':
    unittest.main()
