import json
import unittest

import ligo.api as la
import ligo.np as ln
from ligo.annealing import AnnealingConfig
from ligo.constraints import Constraints, PoolConfig, ConstraintConflictError, InsufficientCandidatesError, \
    JunctionCountError
from ligo.fidelity import is_valid_overhang_set, ligation_fidelity, assembly_fidelity
from ligo.ligation import LigationDataset, UnknownEnzymeError

from ligation_fixtures import hamming_dataset, hamming_matrix, zero_cross_set


class TestOptimize(unittest.TestCase):

    def setUp(self) -> None:
        self.dataset = hamming_dataset(boosted=zero_cross_set)

    def test_four_junctions(self) -> None:
        result = la.optimize_overhang_set(4, 'BsaI', dataset=self.dataset)
        self.assertEqual(set(zero_cross_set), set(result.overhangs))
        self.assertEqual(1.0, result.fidelity)
        self.assertEqual('exhaustive', result.method)
        self.assertEqual('BsaI', result.enzyme)
        self.assertEqual([], result.warnings)
        report = la.evaluate_overhang_set(result.overhangs, 'BsaI', dataset=self.dataset)
        self.assertAlmostEqual(result.fidelity, report.assembly_fidelity)

    def test_excluded_overhang_never_chosen(self) -> None:
        constraints = Constraints(excluded=['TGAC'])
        result = la.optimize_overhang_set(4, 'BsaI', constraints, dataset=self.dataset)
        self.assertNotIn('TGAC', result.overhangs)
        self.assertNotIn('GTCA', result.overhangs)
        self.assertAlmostEqual(1.0, result.fidelity)

    def test_required_first(self) -> None:
        constraints = Constraints(required=['GGAG', 'TACT'], max_gc=3)
        result = la.optimize_overhang_set(6, 'BsaI', constraints, dataset=self.dataset)
        self.assertEqual(['GGAG', 'TACT'], result.overhangs[:2])
        self.assertEqual(6, len(result.overhangs))
        self.assertTrue(is_valid_overhang_set(result.overhangs))
        for oh in result.overhangs[2:]:
            self.assertLessEqual(ln.gc_count(oh), 3)

    def test_greedy_for_many_junctions(self) -> None:
        result = la.optimize_overhang_set(10, 'BsaI', dataset=self.dataset)
        self.assertTrue(result.method.startswith('greedy'))
        self.assertEqual(10, len(result.overhangs))
        self.assertTrue(is_valid_overhang_set(result.overhangs))

    def test_junction_count_out_of_range(self) -> None:
        for bad in [1, 51]:
            with self.assertRaises(JunctionCountError):
                la.optimize_overhang_set(bad, 'BsaI', dataset=self.dataset)

    def test_unknown_enzyme(self) -> None:
        with self.assertRaises(UnknownEnzymeError):
            la.optimize_overhang_set(4, 'EcoRI', dataset=self.dataset)
        with self.assertRaises(UnknownEnzymeError):
            la.optimize_overhang_set(4, 'SapI', dataset=self.dataset)

    def test_required_wrong_length(self) -> None:
        with self.assertRaises(ConstraintConflictError):
            la.optimize_overhang_set(4, 'BsaI', Constraints(required=['GCT']), dataset=self.dataset)

    def test_more_required_than_junctions(self) -> None:
        constraints = Constraints(required=['GGAG', 'TACT', 'AATG'])
        with self.assertRaises(ConstraintConflictError):
            la.optimize_overhang_set(2, 'BsaI', constraints, dataset=self.dataset)

    def test_insufficient_candidates(self) -> None:
        with self.assertRaises(InsufficientCandidatesError) as context:
            la.optimize_overhang_set(10, 'BsaI', Constraints(max_gc=0), dataset=self.dataset)
        self.assertEqual('max_gc', next(iter(context.exception.rejections)))

    def test_required_breaking_composition_limit(self) -> None:
        with self.assertRaises(ConstraintConflictError) as context:
            la.optimize_overhang_set(4, 'BsaI', Constraints(required=['GGAG'], max_gc=2), dataset=self.dataset)
        self.assertIn('max_gc', str(context.exception))
        with self.assertRaises(ConstraintConflictError):
            la.optimize_overhang_set(4, 'BsaI', Constraints(required=['TACT'], max_at=2), dataset=self.dataset)
        with self.assertRaises(ConstraintConflictError):
            la.optimize_overhang_set(4, 'BsaI', Constraints(required=['TACT'], min_self_ligation=5000),
                                     dataset=self.dataset)

    def test_pool_config_keeps_default_self_ligation_floor(self) -> None:
        kept = set(zero_cross_set) | {ln.wc(oh) for oh in zero_cross_set}
        missing = [oh for oh in ln.OverhangList(length=4).to_list() if oh not in kept]
        dataset = hamming_dataset(boosted=zero_cross_set, missing=missing)
        result = la.optimize_overhang_set(4, 'BsaI', pool_config=PoolConfig(alphabet='kmers'), dataset=dataset)
        self.assertEqual(set(zero_cross_set), set(result.overhangs))
        with self.assertRaises(InsufficientCandidatesError) as context:
            la.optimize_overhang_set(5, 'BsaI', pool_config=PoolConfig(alphabet='kmers'), dataset=dataset)
        self.assertIn('min_self_ligation', context.exception.rejections)

    def test_json(self) -> None:
        result = la.optimize_overhang_set(4, 'BsaI', dataset=self.dataset)
        json_map = json.loads(result.to_json())
        self.assertEqual(result.overhangs, json_map['overhangs'])
        self.assertEqual('BsaI', json_map['enzyme'])


class TestEvaluate(unittest.TestCase):

    def test_missing_data_warning(self) -> None:
        dataset = hamming_dataset(missing=['GCAT'])
        report = la.evaluate_overhang_set(zero_cross_set, 'BsaI', dataset=dataset)
        self.assertEqual(0.0, report.assembly_fidelity)
        self.assertIn('no ligation data for overhang GCAT', report.warnings)
        self.assertEqual('BsaI', report.enzyme)

    def test_unknown_enzyme(self) -> None:
        with self.assertRaises(UnknownEnzymeError):
            la.evaluate_overhang_set(zero_cross_set, 'EcoRI', dataset=hamming_dataset())


class TestSimulatedAnnealing(unittest.TestCase):

    def test_annealing(self) -> None:
        dataset = hamming_dataset()
        config = AnnealingConfig(iterations=200, temperature_exponent=-8, random_seed=1)
        result = la.run_simulated_annealing(5, 'BsaI', Constraints(required=['GGAG']), config=config,
                                            dataset=dataset)
        self.assertEqual('annealing', result.method)
        self.assertEqual('ligation', result.objective)
        self.assertEqual('BsaI', result.enzyme)
        self.assertEqual('GGAG', result.overhangs[0])
        self.assertTrue(is_valid_overhang_set(result.overhangs))
        self.assertAlmostEqual(ligation_fidelity(result.overhangs, dataset.matrix_for('BsaI')),
                               result.fidelity)

    def test_multi_run(self) -> None:
        config = AnnealingConfig(iterations=100, temperature_exponent=-8, random_seed=2)
        multi = la.optimize_overhang_set_multi_run(4, 'BsaI', runs=3, config=config, dataset=hamming_dataset())
        self.assertEqual(3, len(multi.fidelities))
        self.assertEqual(max(multi.fidelities), multi.best.fidelity)
        self.assertEqual(multi.fidelities[multi.best_run_index], multi.best.fidelity)
        self.assertLessEqual(multi.mean_fidelity, multi.best.fidelity)

    def test_multi_run_needs_a_run(self) -> None:
        with self.assertRaises(ValueError):
            la.optimize_overhang_set_multi_run(4, 'BsaI', runs=0, dataset=hamming_dataset())

    def test_required_breaking_composition_limit(self) -> None:
        constraints = Constraints(required=['GGAG'], max_gc=2)
        with self.assertRaises(ConstraintConflictError):
            la.run_simulated_annealing(4, 'BsaI', constraints, dataset=hamming_dataset())
        with self.assertRaises(ConstraintConflictError):
            la.optimize_overhang_set_multi_run(4, 'BsaI', constraints, runs=2, dataset=hamming_dataset())


class TestBatchScore(unittest.TestCase):

    def test_distribution(self) -> None:
        dataset = hamming_dataset()
        report = la.batch_score_random_sets(5, 'BsaI', 40, dataset=dataset, random_seed=3)
        self.assertEqual(40, len(report.samples))
        fidelities = [sample.fidelity for sample in report.samples]
        self.assertEqual(sorted(fidelities, reverse=True), fidelities)
        self.assertEqual(report.maximum, report.best.fidelity)
        self.assertEqual(report.minimum, report.worst.fidelity)
        self.assertTrue(report.minimum <= report.median <= report.maximum)
        self.assertTrue(report.minimum <= report.mean <= report.maximum)
        self.assertGreaterEqual(report.std_dev, 0.0)
        self.assertEqual([10, 25, 50, 75, 90], sorted(report.percentiles))
        self.assertAlmostEqual(report.median, report.percentiles[50])
        matrix = dataset.matrix_for('BsaI')
        for sample in report.samples:
            self.assertEqual(5, len(sample.overhangs))
            self.assertTrue(is_valid_overhang_set(sample.overhangs))
            self.assertAlmostEqual(ligation_fidelity(sample.overhangs, matrix), sample.fidelity)
        self.assertIn('best set', report.summary())

    def test_assembly_objective_and_exclusion(self) -> None:
        dataset = hamming_dataset()
        report = la.batch_score_random_sets(4, 'BsaI', 20, excluded=['GGAG'], objective='assembly',
                                            dataset=dataset, random_seed=4)
        matrix = dataset.matrix_for('BsaI')
        for sample in report.samples:
            self.assertNotIn('GGAG', sample.overhangs)
            self.assertNotIn('CTCC', sample.overhangs)
            self.assertAlmostEqual(assembly_fidelity(sample.overhangs, matrix), sample.fidelity)

    def test_bad_arguments(self) -> None:
        with self.assertRaises(ValueError):
            la.batch_score_random_sets(4, 'BsaI', 10, objective='yield', dataset=hamming_dataset())
        with self.assertRaises(ValueError):
            la.batch_score_random_sets(4, 'BsaI', 0, dataset=hamming_dataset())


class TestCompareEnzymes(unittest.TestCase):

    def test_compare(self) -> None:
        dataset = LigationDataset({'BsaI-HFv2': hamming_matrix(cross=20.0),
                                   'BsmBI-v2': hamming_matrix(cross=500.0)})
        comparisons = la.compare_enzyme_fidelity(['tgac', 'TGAA', 'GCAT'], dataset)
        self.assertEqual('BsaI', comparisons[0].enzyme)
        self.assertGreater(comparisons[0].assembly_fidelity, comparisons[1].assembly_fidelity)


if __name__ == '__main__':
    unittest.main()
