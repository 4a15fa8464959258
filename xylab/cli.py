"""
Command-line interface for xylab.
"""

import argparse
import sys

from . import XYModel, MonteCarlo, TemperatureScan
from .core.xy_model import ALGORITHMS, resolve_algorithm
from .analysis.thermodynamics import temperature_grid, find_critical_temperature
from .utils.constants import DEFAULT_PARAMETERS, T_BKT


def _add_model_arguments(parser: argparse.ArgumentParser, temperature: bool = True):
    """Lattice and Hamiltonian options shared by all commands."""
    parser.add_argument('-L', '--size', type=int, default=DEFAULT_PARAMETERS['size'],
                        help=f"Linear lattice size N (default: {DEFAULT_PARAMETERS['size']})")
    if temperature:
        parser.add_argument('-T', '--temperature', type=float,
                            default=DEFAULT_PARAMETERS['temperature'],
                            help=f"Temperature (default: {DEFAULT_PARAMETERS['temperature']})")
    parser.add_argument('-J', '--coupling', type=float, default=DEFAULT_PARAMETERS['coupling'],
                        help=f"Exchange coupling (default: {DEFAULT_PARAMETERS['coupling']})")
    parser.add_argument('-H', '--field', type=float, default=DEFAULT_PARAMETERS['field'],
                        help=f"External field along x (default: {DEFAULT_PARAMETERS['field']})")
    parser.add_argument('-a', '--algorithm', default='metropolis', type=resolve_algorithm,
                        help=f"Update algorithm: {', '.join(ALGORITHMS)}; hyphenated names "
                             f"and metropolis-reflection are accepted (default: metropolis)")
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed (default: OS entropy)')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Disable progress bars')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='xylab',
        description="xylab: Monte Carlo simulation of the 2D XY model",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Single temperature run
    run_parser = subparsers.add_parser('run', help='Run Monte Carlo at one temperature')
    _add_model_arguments(run_parser)
    run_parser.add_argument('-n', '--steps', type=int, default=1000,
                            help='Number of algorithm calls (default: 1000)')
    run_parser.add_argument('-e', '--equilibration', type=int, default=None,
                            help='Calls before sampling (default: steps // 10)')

    # Temperature scan
    scan_parser = subparsers.add_parser('scan', help='Scan a temperature range')
    _add_model_arguments(scan_parser, temperature=False)
    scan_parser.add_argument('-T', '--temperatures', nargs=3, type=float,
                             default=[1.5, 0.5, -0.1], metavar=('INIT', 'FINAL', 'STEP'),
                             help='Temperature range: init final step (default: 1.5 0.5 -0.1)')
    scan_parser.add_argument('--warmup', type=int, default=1000,
                             help='Warmup calls per temperature (default: 1000)')
    scan_parser.add_argument('--decorrelation', type=int, default=100,
                             help='Decorrelation calls per temperature (default: 100)')
    scan_parser.add_argument('--measurements', type=int, default=1000,
                             help='Measured calls per temperature (default: 1000)')
    scan_parser.add_argument('--bins', type=int, default=10,
                             help='Bins for error estimates (default: 10)')
    scan_parser.add_argument('--csv', action='store_true',
                             help='Print the result table as CSV')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    try:
        if args.command == 'run':
            run_monte_carlo(args)
        elif args.command == 'scan':
            run_temperature_scan(args)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


def run_monte_carlo(args):
    """Run Monte Carlo simulation at one temperature."""
    print(f"Running Monte Carlo simulation...")
    print(f"Lattice: {args.size}x{args.size}")
    print(f"Temperature: {args.temperature}")
    print(f"Coupling: {args.coupling}  Field: {args.field}")
    print(f"Algorithm: {args.algorithm}")
    print(f"Steps: {args.steps}")

    model = XYModel(args.size, args.temperature, args.coupling, args.field,
                    random_seed=args.seed)
    equilibration = args.equilibration if args.equilibration is not None else args.steps // 10

    mc = MonteCarlo(model, algorithm=args.algorithm)
    results = mc.run(
        n_steps=args.steps,
        equilibration_steps=equilibration,
        verbose=not args.quiet
    )

    print(f"\nFinal energy per spin: {results['final_energy']:.6f}")
    print(f"Final magnetization per spin: {results['final_magnetization']:.4f}")
    print(f"Acceptance rate: {results['acceptance_rate']:.3f}")
    print(f"Steps per second: {results['timing']['steps_per_second']:.1f}")

    if results['n_samples'] > 1:
        properties = mc.calculate_thermodynamic_properties()
        print(f"<E>: {properties['mean_energy']:.6f}  C: {properties['heat_capacity']:.4f}")
        print(f"<M>: {properties['mean_magnetization']:.4f}  chi: {properties['susceptibility']:.4f}")


def run_temperature_scan(args):
    """Run a temperature scan."""
    temperatures = temperature_grid(*args.temperatures)
    print(f"Running temperature scan...", file=sys.stderr)
    print(f"Lattice: {args.size}x{args.size}, algorithm: {args.algorithm}", file=sys.stderr)
    print(f"Temperatures: {temperatures[0]} -> {temperatures[-1]} ({len(temperatures)} points)",
          file=sys.stderr)

    first_temperature = temperatures[0] if temperatures[0] > 0 else DEFAULT_PARAMETERS['temperature']
    model = XYModel(args.size, first_temperature, args.coupling, args.field,
                    random_seed=args.seed)

    scan = TemperatureScan(
        model,
        algorithm=args.algorithm,
        n_warmup=args.warmup,
        n_decorrelation=args.decorrelation,
        n_measurements=args.measurements,
        n_bins=args.bins
    )
    properties = scan.run(temperatures, verbose=not args.quiet)

    if args.csv:
        sys.stdout.write(scan.to_csv())
        return

    print(f"{'T':>8}{'E':>12}{'dE':>10}{'M':>10}{'dM':>10}{'C':>10}{'chi':>10}{'acc':>8}")
    for row in scan.results:
        print(f"{row['temperature']:>8.3f}{row['energy']:>12.5f}{row['energy_sem']:>10.5f}"
              f"{row['magnetization']:>10.4f}{row['magnetization_sem']:>10.4f}"
              f"{row['specific_heat']:>10.4f}{row['susceptibility']:>10.4f}"
              f"{row['acceptance']:>8.3f}")

    if len(temperatures) >= 4:
        peak = find_critical_temperature(properties['temperature'], properties['specific_heat'])
        print(f"\nSpecific heat peak: T = {peak['critical_temperature']:.3f} "
              f"(T_BKT = {T_BKT} for J = 1)")
    else:
        print("\nToo few temperatures to locate the specific heat peak")


if __name__ == "__main__":
    main()
