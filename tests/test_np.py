import unittest

import numpy as np

import ligo.np as ln


class TestReverseComplement(unittest.TestCase):

    def test_wc(self) -> None:
        self.assertEqual('GTCA', ln.wc('TGAC'))
        self.assertEqual('ATGC', ln.wc('GCAT'))
        self.assertEqual('GAAGAGC', ln.wc('GCTCTTC'))

    def test_wc_is_involution(self) -> None:
        for seq in ['AACG', 'TTTT', 'GAT', 'CGCGA']:
            self.assertEqual(seq, ln.wc(ln.wc(seq)))

    def test_is_palindrome(self) -> None:
        self.assertTrue(ln.is_palindrome('GATC'))
        self.assertTrue(ln.is_palindrome('acgt'))
        self.assertFalse(ln.is_palindrome('GGAG'))
        # odd-length overhangs are never palindromic
        self.assertFalse(ln.is_palindrome('GCT'))

    def test_normalize_overhang(self) -> None:
        self.assertEqual('GGAG', ln.normalize_overhang('ggAg'))
        with self.assertRaises(ValueError):
            ln.normalize_overhang('GGNG')
        with self.assertRaises(ValueError):
            ln.normalize_overhang('')

    def test_composition(self) -> None:
        self.assertEqual(3, ln.gc_count('GGAG'))
        self.assertEqual(1, ln.at_count('GGAG'))


class TestOverhangList(unittest.TestCase):

    def test_all_sequences_in_lexicographic_order(self) -> None:
        arr = ln.make_array_with_all_dna_seqs(4)
        self.assertEqual((256, 4), arr.shape)
        self.assertEqual('AAAA', ln.arr2seq(arr[0]))
        self.assertEqual('AAAC', ln.arr2seq(arr[1]))
        self.assertEqual('CACC', ln.arr2seq(arr[69]))
        self.assertEqual('TTTT', ln.arr2seq(arr[255]))

    def test_wc_arr(self) -> None:
        arr = ln.seqs2arr(['TGAC', 'GGAG'])
        rc = ln.wc_arr(arr)
        self.assertEqual(['GTCA', 'CTCC'], [ln.arr2seq(row) for row in rc])

    def test_palindrome_mask(self) -> None:
        overhangs = ln.OverhangList(seqs=['GATC', 'GGAG', 'ACGT', 'TGAC'])
        np.testing.assert_array_equal([True, False, True, False], overhangs.palindrome_mask())

    def test_all_4mers_have_16_palindromes(self) -> None:
        overhangs = ln.OverhangList(length=4)
        self.assertEqual(16, int(np.sum(overhangs.palindrome_mask())))

    def test_base_counts(self) -> None:
        overhangs = ln.OverhangList(seqs=['GGAG', 'AATT', 'GCGC'])
        np.testing.assert_array_equal([3, 0, 4], overhangs.gc_counts())
        np.testing.assert_array_equal([1, 4, 0], overhangs.at_counts())

    def test_exactly_one_source(self) -> None:
        with self.assertRaises(ValueError):
            ln.OverhangList(length=4, seqs=['AAAA'])
        with self.assertRaises(ValueError):
            ln.OverhangList()

    def test_seqs2arr(self) -> None:
        np.testing.assert_array_equal([[0, 1, 2, 3]], ln.seqs2arr(['ACGT']))
        overhangs = ln.OverhangList(seqs=['TGAC', 'GGAG'])
        self.assertEqual(2, len(overhangs))
        self.assertEqual(['TGAC', 'GGAG'], overhangs.to_list())

    def test_unequal_lengths(self) -> None:
        with self.assertRaises(ValueError):
            ln.OverhangList(seqs=['AAAA', 'CCC'])


if __name__ == '__main__':
    unittest.main()
