import unittest

from xorsolver.utils import best_keysizes, estimate_keysizes, hamming_distance


class HammingDistance(unittest.TestCase):
    def testKnownDistance(self):
        self.assertEqual(hamming_distance(b"this is a test", b"wokka wokka!!!"), 37)

    def testAllBitsDiffer(self):
        self.assertEqual(hamming_distance(b"\x00" * 5, b"\xff" * 5), 40)

    def testUnequalLengths(self):
        with self.assertRaises(ValueError):
            hamming_distance(b"ab", b"abc")


class EstimateKeysizes(unittest.TestCase):
    def testNormalizedDistanceOfOppositeChunks(self):
        for size in (1, 3, 8):
            table = estimate_keysizes(b"\x00" * size + b"\xff" * size, size)
            self.assertEqual(table[size], 8.0)

    def testShortInputOmitsKeysize(self):
        data = b"abcdefghi"
        table = estimate_keysizes(data, 10)
        self.assertEqual(sorted(table), [1, 2, 3, 4])
        for size in range(5, 11):
            self.assertNotIn(size, table)

    def testEmptyCiphertext(self):
        skipped = []
        self.assertEqual(estimate_keysizes(b"", 4, on_insufficient_data=skipped.append), {})
        self.assertEqual(skipped, [1, 2, 3, 4])

    def testSamplePairsBound(self):
        # first two pairs identical, third pair fully different
        data = b"\x00\x00" * 2 + b"\x00\xff"
        self.assertEqual(estimate_keysizes(data, 1)[1], 0.0)
        self.assertAlmostEqual(estimate_keysizes(data, 1, sample_pairs=None)[1], 8.0 / 3)
        self.assertEqual(estimate_keysizes(data, 1, sample_pairs=3)[1],
                         estimate_keysizes(data, 1, sample_pairs=None)[1])

    def testPairsAreDisjoint(self):
        # sliding comparison would see 0xff vs 0x00 at positions 1-2
        data = b"\x00\x00\xff\xff"
        self.assertEqual(estimate_keysizes(data, 1)[1], 0.0)

    def testBestKeysizes(self):
        table = {1: 3.5, 2: 2.0, 3: 1.25, 4: 2.0, 6: 1.5}
        self.assertEqual(best_keysizes(table, 3), [3, 6, 2])
        self.assertEqual(best_keysizes({}, 3), [])


if __name__ == "__main__":
    unittest.main()
