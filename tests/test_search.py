import itertools
import json
import unittest

import numpy as np

import ligo.np as ln
import ligo.search as ls
from ligo.constraints import Constraints, build_candidate_pool, InsufficientCandidatesError
from ligo.fidelity import assembly_fidelity, has_zero_cross_ligation, is_valid_overhang_set

from ligation_fixtures import hamming_matrix, zero_cross_set, dense_cross_matrix, dense_overhangs


def hamming_pool(**kwargs):
    matrix = hamming_matrix(**kwargs)
    return matrix, list(build_candidate_pool(matrix, Constraints()).candidates)


class TestCombinationsPruned(unittest.TestCase):

    def test_matches_itertools_without_pruning(self) -> None:
        for n, k in [(6, 3), (5, 1), (4, 4), (7, 2)]:
            self.assertEqual(list(itertools.combinations(range(n), k)),
                             list(ls.combinations_pruned(n, k)))

    def test_edge_cases(self) -> None:
        self.assertEqual([()], list(ls.combinations_pruned(3, 0)))
        self.assertEqual([], list(ls.combinations_pruned(3, 4)))

    def test_pruning_skips_extensions(self) -> None:
        def without_1_and_2_together(prefix):
            return not (1 in prefix and 2 in prefix)

        expected = [c for c in itertools.combinations(range(6), 3) if not (1 in c and 2 in c)]
        self.assertEqual(expected, list(ls.combinations_pruned(6, 3, without_1_and_2_together)))


class TestExhaustiveSearch(unittest.TestCase):

    def test_finds_documented_zero_cross_set(self) -> None:
        matrix, pool = hamming_pool(boosted=zero_cross_set)
        result = ls.exhaustive_search(4, pool, matrix)
        self.assertEqual('exhaustive', result.method)
        self.assertEqual(set(zero_cross_set), set(result.overhangs))
        self.assertEqual(1.0, result.fidelity)
        self.assertTrue(result.is_perfect)
        self.assertEqual(1, result.combinations_checked)
        self.assertEqual(80, result.candidates_considered)

    def test_perfect_when_zero_cross_subset_exists(self) -> None:
        matrix, pool = hamming_pool()
        for size in [3, 4, 5]:
            result = ls.exhaustive_search(size, pool, matrix)
            self.assertEqual(size, len(result.overhangs))
            self.assertTrue(has_zero_cross_ligation(result.overhangs, matrix))
            self.assertAlmostEqual(1.0, result.fidelity)
            self.assertTrue(is_valid_overhang_set(result.overhangs))

    def test_required_overhangs_are_pinned(self) -> None:
        matrix, pool = hamming_pool()
        required = ['TGAC', 'GCAT']
        pool = [oh for oh in pool if oh not in required and ln.wc(oh) not in required]
        result = ls.exhaustive_search(5, pool, matrix, required)
        self.assertEqual(required, result.overhangs[:2])
        self.assertEqual(required, result.required)
        self.assertAlmostEqual(1.0, result.fidelity)

    def test_relaxed_pass_matches_brute_force(self) -> None:
        matrix = dense_cross_matrix()
        for size in [2, 3, 4]:
            result = ls.exhaustive_search(size, dense_overhangs, matrix)
            self.assertEqual('exhaustive', result.method)
            best = max(assembly_fidelity(list(c), matrix) for c in itertools.combinations(dense_overhangs, size))
            self.assertAlmostEqual(best, result.fidelity)
            self.assertAlmostEqual(assembly_fidelity(result.overhangs, matrix), result.fidelity)
            self.assertLess(result.fidelity, 1.0)

    def test_required_cross_ligation_falls_back_to_greedy(self) -> None:
        matrix, pool = hamming_pool()
        required = ['TGAC', 'TGAA']
        result = ls.exhaustive_search(4, pool, matrix, required, rng=np.random.default_rng(1))
        self.assertTrue(result.method.startswith('greedy'))
        self.assertIsNotNone(result.fallback_reason)
        self.assertEqual(required, result.overhangs[:2])
        self.assertEqual(4, len(result.overhangs))

    def test_max_combinations(self) -> None:
        matrix = dense_cross_matrix()
        result = ls.exhaustive_search(3, dense_overhangs, matrix, config=ls.ExhaustiveConfig(max_combinations=1))
        self.assertEqual(3, len(result.overhangs))
        self.assertEqual(1, result.combinations_checked)

    def test_candidate_limit(self) -> None:
        config = ls.ExhaustiveConfig()
        self.assertEqual(80, config.candidate_limit(1))
        self.assertEqual(80, config.candidate_limit(4))
        self.assertEqual(60, config.candidate_limit(6))
        self.assertEqual(50, config.candidate_limit(7))


class TestGreedySearch(unittest.TestCase):

    def test_greedy_build_prefers_zero_cross(self) -> None:
        matrix, pool = hamming_pool()
        overhangs = ls.greedy_build(8, pool, matrix)
        self.assertEqual(8, len(overhangs))
        self.assertTrue(has_zero_cross_ligation(overhangs, matrix))

    def test_greedy_build_relaxes_when_needed(self) -> None:
        matrix = dense_cross_matrix()
        overhangs = ls.greedy_build(4, dense_overhangs, matrix)
        self.assertEqual(dense_overhangs[:4], overhangs)

    def test_monotonic_over_plain_greedy(self) -> None:
        matrix = dense_cross_matrix()
        baseline = assembly_fidelity(ls.greedy_build(4, dense_overhangs, matrix), matrix)
        result = ls.greedy_search(4, dense_overhangs, matrix, rng=np.random.default_rng(7))
        self.assertGreaterEqual(result.fidelity, baseline)
        self.assertTrue(is_valid_overhang_set(result.overhangs))
        self.assertIn(result.method, ['greedy', 'greedy+2opt', 'greedy+restart'])

    def test_large_set_is_valid(self) -> None:
        matrix, pool = hamming_pool()
        result = ls.greedy_search(12, pool, matrix, ['GGAG'], rng=np.random.default_rng(3))
        self.assertEqual(12, len(result.overhangs))
        self.assertEqual('GGAG', result.overhangs[0])
        self.assertTrue(is_valid_overhang_set(result.overhangs))
        for oh in result.overhangs[1:]:
            self.assertFalse(ln.is_palindrome(oh))
        self.assertAlmostEqual(assembly_fidelity(result.overhangs, matrix), result.fidelity)

    def test_two_opt_improves_and_keeps_fixed_positions(self) -> None:
        matrix, pool = hamming_pool()
        start = ['TGAC', 'TGAA', 'TGAG']
        start_fidelity = assembly_fidelity(start, matrix)
        improved, fidelity, swaps = ls.two_opt(start, pool, matrix, num_fixed=1)
        self.assertEqual('TGAC', improved[0])
        self.assertGreater(fidelity, start_fidelity)
        self.assertGreater(swaps, 0)
        self.assertAlmostEqual(1.0, fidelity)

    def test_two_opt_iteration_cap(self) -> None:
        matrix, pool = hamming_pool()
        start = ['TGAC', 'TGAA', 'TGAG']
        _, _, swaps = ls.two_opt(start, pool, matrix, config=ls.GreedyConfig(max_local_search_iterations=0))
        self.assertEqual(0, swaps)

    def test_seeded_restarts_are_reproducible(self) -> None:
        matrix = dense_cross_matrix()
        config = ls.GreedyConfig(random_seed=11)
        first = ls.greedy_search(3, dense_overhangs, matrix, config=config)
        second = ls.greedy_search(3, dense_overhangs, matrix, config=config)
        self.assertEqual(first.overhangs, second.overhangs)

    def test_bad_config(self) -> None:
        with self.assertRaises(ValueError):
            ls.GreedyConfig(num_restarts=-1)

    def test_small_pool_names_no_filter(self) -> None:
        matrix = hamming_matrix()
        with self.assertRaises(InsufficientCandidatesError) as context:
            ls.greedy_search(5, ['TGAC', 'GCAT', 'GATG', 'GGAG'], matrix, ['GGAG'])
        self.assertEqual({}, context.exception.rejections)
        self.assertEqual(4, context.exception.needed)
        self.assertEqual(3, context.exception.available)


class TestDispatcher(unittest.TestCase):

    def test_small_residual_uses_exhaustive(self) -> None:
        matrix, pool = hamming_pool()
        result = ls.find_optimal_overhang_set(8, pool, matrix)
        self.assertEqual('exhaustive', result.method)

    def test_residual_counts_only_unpinned_positions(self) -> None:
        matrix, pool = hamming_pool()
        required = ['TGAC', 'GCAT']
        pool = [oh for oh in pool if oh not in required and ln.wc(oh) not in required]
        result = ls.find_optimal_overhang_set(10, pool, matrix, required)
        self.assertEqual('exhaustive', result.method)
        self.assertEqual(10, len(result.overhangs))

    def test_large_residual_uses_greedy(self) -> None:
        matrix, pool = hamming_pool()
        result = ls.find_optimal_overhang_set(9, pool, matrix, rng=np.random.default_rng(0))
        self.assertTrue(result.method.startswith('greedy'))
        self.assertEqual(9, len(result.overhangs))

    def test_force_exhaustive(self) -> None:
        matrix, pool = hamming_pool()
        result = ls.find_optimal_overhang_set(9, pool, matrix, force_exhaustive=True)
        self.assertEqual('exhaustive', result.method)


class TestSearchResult(unittest.TestCase):

    def test_json_and_summary(self) -> None:
        result = ls.SearchResult(overhangs=['TGAC', 'GCAT'], fidelity=1.0, method='exhaustive',
                                 enzyme='BsaI', warnings=['something'])
        json_map = json.loads(result.to_json())
        self.assertEqual(['TGAC', 'GCAT'], json_map['overhangs'])
        self.assertTrue(json_map['is_perfect'])
        summary = result.summary()
        self.assertIn('TGAC GCAT', summary)
        self.assertIn('warning: something', summary)


if __name__ == '__main__':
    unittest.main()
