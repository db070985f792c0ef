from __future__ import annotations
from typing import NamedTuple, Optional, List
import argparse
import logging
import os

import ligo.api as la
import ligo.ligation as ll
from ligo.annealing import AnnealingConfig
from ligo.constraints import Constraints
from ligo.search import GreedyConfig


# command-line arguments
class CLArgs(NamedTuple):
    num_junctions: int
    enzyme: str
    required: List[str]
    excluded: List[str]
    max_gc: Optional[int]
    max_at: Optional[int]
    ligation_data: Optional[str]
    annealing: bool
    iterations: int
    random_seed: Optional[int]
    baseline: int
    output: Optional[str]
    verbose: bool


def parse_command_line_arguments() -> CLArgs:
    parser = argparse.ArgumentParser(  # noqa
        description='Design a set of Golden Gate overhangs with high ligation fidelity.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('num_junctions', type=int,
                        help='number of overhangs in the set (2-50)')
    parser.add_argument('-e', '--enzyme', type=str, default='BsaI',
                        help=f'enzyme; one of {", ".join(ll.golden_gate_enzymes)}')
    parser.add_argument('-r', '--required', type=str, nargs='*', default=[],
                        help='overhangs that must be in the set, in order')
    parser.add_argument('-x', '--excluded', type=str, nargs='*', default=[],
                        help='overhangs (and their reverse complements) never chosen')
    parser.add_argument('--max-gc', type=int, default=None,
                        help='maximum number of G/C bases per chosen overhang')
    parser.add_argument('--max-at', type=int, default=None,
                        help='maximum number of A/T bases per chosen overhang')
    parser.add_argument('-d', '--ligation-data', type=str, default=None,
                        help=f'JSON file of ligation frequencies; if not given, uses the file named by '
                             f'the environment variable {ll.ligation_data_env_var}')
    parser.add_argument('-a', '--annealing', action='store_true',
                        help='use simulated annealing (maximizing ligation fidelity) instead of '
                             'exhaustive/greedy search (maximizing assembly fidelity)')
    parser.add_argument('-i', '--iterations', type=int, default=10000,
                        help='number of simulated annealing iterations')
    parser.add_argument('-s', '--random-seed', type=int, default=None,
                        help='random seed, to make the search reproducible')
    parser.add_argument('-b', '--baseline', type=int, default=0,
                        help='if positive, also score this many random sets for comparison')
    parser.add_argument('-o', '--output', type=str, default=None,
                        help='file in which to write the result as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='log search details')

    args = parser.parse_args()

    return CLArgs(num_junctions=args.num_junctions, enzyme=args.enzyme, required=args.required,
                  excluded=args.excluded, max_gc=args.max_gc, max_at=args.max_at,
                  ligation_data=args.ligation_data, annealing=args.annealing, iterations=args.iterations,
                  random_seed=args.random_seed, baseline=args.baseline, output=args.output,
                  verbose=args.verbose)


def main() -> None:
    args: CLArgs = parse_command_line_arguments()

    if args.verbose:
        ll.logger.handlers[0].setLevel(logging.DEBUG)

    dataset = None
    if args.ligation_data is not None:
        dataset = ll.LigationDataset.from_file(args.ligation_data)

    constraints = Constraints(required=args.required, excluded=args.excluded,
                              max_gc=args.max_gc, max_at=args.max_at)

    if args.annealing:
        config = AnnealingConfig(iterations=args.iterations, random_seed=args.random_seed,
                                 log_progress=args.verbose, progress_interval=max(1, args.iterations // 20))
        result = la.run_simulated_annealing(args.num_junctions, args.enzyme, constraints,
                                            config=config, dataset=dataset)
    else:
        result = la.optimize_overhang_set(args.num_junctions, args.enzyme, constraints,
                                          greedy_config=GreedyConfig(random_seed=args.random_seed),
                                          dataset=dataset)

    print(result.summary())
    print()
    print(la.evaluate_overhang_set(result.overhangs, args.enzyme, required=constraints.required,
                                   dataset=dataset).summary())

    if args.baseline > 0:
        objective = result.objective
        distribution = la.batch_score_random_sets(args.num_junctions, args.enzyme, args.baseline,
                                                  excluded=args.excluded, objective=objective,
                                                  dataset=dataset, random_seed=args.random_seed)
        better = sum(1 for sample in distribution.samples if sample.fidelity < result.fidelity)
        print()
        print(f'{objective} fidelity of {args.baseline} random sets:')
        print(distribution.summary())
        print(f'designed set beats {better} of {args.baseline} random sets')

    if args.output is not None:
        directory = os.path.dirname(args.output)
        if directory != '':
            os.makedirs(directory, exist_ok=True)
        with open(args.output, 'w') as f:
            f.write(result.to_json())
        ll.logger.info(f'wrote result to {args.output}')


if __name__ == '__main__':
    main()
