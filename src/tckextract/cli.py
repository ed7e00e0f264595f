"""
tckextract Command-Line Interface

Extract streamlines from a tractogram based on their assignment to
parcellated nodes.
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ExtractionConfig, FileMode
from .connectome.selection import parse_node_list
from .utils.logger import get_logger, set_verbosity


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the tckextract command"""
    parser = argparse.ArgumentParser(
        prog="tckextract",
        description="Extract streamlines from a tractogram based on their assignment to parcellated nodes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One file per edge of the whole connectome
  tckextract tracks.tck assignments.txt edges/edge-

  # All streamlines touching nodes 3, 4 and 5, one file per node
  tckextract tracks.tck assignments.txt nodes/node- --nodes 3-5 --files per_node

  # Mean exemplar per edge among nodes 1 to 10, in a single file
  tckextract tracks.tck assignments.txt exemplars.tck --nodes 1-10 --exclusive \\
      --files single --exemplars parcellation.nii.gz
        """
    )

    parser.add_argument('tracks_in', help='The input track file')
    parser.add_argument('assignments_in', help='Text file containing the node assignments for each streamline')
    parser.add_argument('prefix_out', help='The output file / prefix')

    parser.add_argument('--version', action='version', version=f'tckextract {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug mode')
    parser.add_argument('--log-dir', help='Also write a detailed log file to this directory')
    parser.add_argument('--config', help='Run configuration JSON (command-line options take precedence)')

    output = parser.add_argument_group('Options for determining the content / format of output files')
    output.add_argument('--nodes', type=parse_node_list,
                        help='Only select tracks that involve a set of nodes of interest (e.g. 1,3-5)')
    output.add_argument('--exclusive', action='store_true', default=None,
                        help='Only select tracks that exclusively connect nodes from within the '
                             'list of nodes of interest')
    output.add_argument('--files', choices=[m.value for m in FileMode], default=None,
                        help='How the resulting streamlines will be grouped in output files '
                             '(default: per_edge)')
    output.add_argument('--exemplars', metavar='IMAGE',
                        help='Generate a mean connection exemplar per edge rather than keeping all '
                             'streamlines; the parcellation node image constrains the exemplar endpoints')
    output.add_argument('--keep-unassigned', action='store_true', default=None,
                        help='Generate outputs for streamlines not assigned to a node '
                             '(labelled as node index 0)')
    output.add_argument('--keep-self-connections', action='store_true', default=None,
                        help='Also generate outputs for streamlines connecting a node to itself')
    output.add_argument('--exemplar-points', type=int,
                        help='Number of points in each exemplar streamline (default: 50)')

    weights = parser.add_argument_group('Options for importing / exporting streamline weights')
    weights.add_argument('--tck-weights-in', metavar='FILE',
                         help='Text file containing a weight for each streamline')
    weights.add_argument('--prefix-tck-weights-out', metavar='PREFIX',
                         help='Prefix for a weights text file corresponding to each output track file')

    parallel = parser.add_argument_group('Parallel processing')
    parallel.add_argument('--nthreads', type=int,
                          help='Number of worker threads (default: 4; use 1 for reproducible ordering)')

    return parser


def config_from_args(args: argparse.Namespace) -> ExtractionConfig:
    """Merge a JSON config file (if given) with command-line options"""
    config = ExtractionConfig.from_json(args.config) if args.config else ExtractionConfig()
    return config.updated(
        prefix=args.prefix_out,
        nodes=tuple(args.nodes) if args.nodes is not None else None,
        exclusive=args.exclusive,
        file_mode=args.files,
        keep_unassigned=args.keep_unassigned,
        keep_self_connections=args.keep_self_connections,
        exemplars=args.exemplars,
        weights_in=args.tck_weights_in,
        weights_prefix=args.prefix_tck_weights_out,
        n_workers=args.nthreads,
        exemplar_points=args.exemplar_points
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    from .tractography.pipeline import extract_connectome_tracks

    parser = build_parser()
    args = parser.parse_args(argv)

    logger = get_logger(log_dir=args.log_dir)
    set_verbosity(verbose=args.verbose, debug=args.debug)

    try:
        config = config_from_args(args)
        stats = extract_connectome_tracks(
            args.tracks_in,
            args.assignments_in,
            config,
            show_progress=args.verbose or args.debug
        )
        logger.info(
            f"Command completed successfully: {stats.n_retained}/{stats.n_read} streamlines retained"
        )
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.debug)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
